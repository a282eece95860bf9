"""Global constants for Score Follower."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
PITCH_CLASS_COUNT = 12

# Score time convention (ticks)
TICKS_PER_QUARTER = 480
TICKS_PER_MEASURE = 1920  # 4/4 only

# Audio processing defaults
DEFAULT_SR = 22050
DEFAULT_WINDOW_SIZE = 2048
DEFAULT_HOP_LENGTH = 1024

# Pitch detection range (sung voice)
DEFAULT_FMIN = 65.0  # C2
DEFAULT_FMAX = 1047.0  # C6
DEFAULT_SILENCE_DB = -40.0

# Reference tuning
A4_FREQ = 440.0
A4_MIDI = 69
