"""Score loading - files to ordered ScoreNote sequences.

Only the note data the tracker needs is read: position and length in ticks
(480 per quarter) and a pitch or a rest flag.
"""

import json
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import pretty_midi

from ..core import ScoreNote, TICKS_PER_QUARTER


class ScoreLoader(Protocol):
    """Anything that produces an ordered note list from a file."""

    def load(self, path: Union[str, Path]) -> List[ScoreNote]:
        ...


class JsonScoreLoader:
    """Load scores from JSON.

    Accepts ``{"notes": [...]}`` or a bare list. Each entry has ``length``,
    and either ``pitch`` (MIDI number) or ``"rest": true``. ``position`` may
    be omitted, in which case notes follow each other back to back.
    """

    def load(self, path: Union[str, Path]) -> List[ScoreNote]:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Score file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return self.parse(data)

    def parse(self, data: Any) -> List[ScoreNote]:
        entries = data.get("notes") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ValueError("Score JSON must be a list of notes or contain a 'notes' list")

        notes = []
        cursor = 0
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValueError(f"Note {index} must be an object, got {entry!r}")
            if "length" not in entry:
                raise ValueError(f"Note {index} has no length")

            position = int(entry.get("position", cursor))
            length = int(entry["length"])
            pitch = None if entry.get("rest") else entry.get("pitch")
            if pitch is None and not entry.get("rest"):
                raise ValueError(f"Note {index} needs a pitch or 'rest': true")

            notes.append(
                ScoreNote(
                    index=index,
                    position=position,
                    length=length,
                    pitch=None if pitch is None else int(pitch),
                )
            )
            cursor = position + length

        return notes


class MidiScoreLoader:
    """Load a monophonic melody from a MIDI file.

    The first non-drum instrument is used. Gaps become rests and overlapping
    notes are cut at the next onset.
    """

    def __init__(self, instrument: Optional[int] = None, min_rest_ticks: int = 120):
        """
        Initialize MidiScoreLoader.

        Args:
            instrument: Instrument number to read (default: first non-drum)
            min_rest_ticks: Shorter gaps are absorbed into the previous note (default: a 16th)
        """
        self.instrument = instrument
        self.min_rest_ticks = min_rest_ticks

    def load(self, path: Union[str, Path]) -> List[ScoreNote]:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Score file not found: {path}")

        midi = pretty_midi.PrettyMIDI(str(path))
        instrument = self._pick_instrument(midi.instruments)
        scale = TICKS_PER_QUARTER / midi.resolution

        events = sorted(
            (
                int(round(midi.time_to_tick(n.start) * scale)),
                int(round(midi.time_to_tick(n.end) * scale)),
                n.pitch,
            )
            for n in instrument.notes
        )
        return self._to_score(events)

    def _pick_instrument(self, instruments):
        if self.instrument is not None:
            if not 0 <= self.instrument < len(instruments):
                raise ValueError(f"MIDI file has no instrument {self.instrument}")
            return instruments[self.instrument]

        melodic = [inst for inst in instruments if not inst.is_drum and inst.notes]
        if not melodic:
            raise ValueError("MIDI file contains no melodic notes")
        if len(melodic) > 1:
            warnings.warn(
                f"MIDI file has {len(melodic)} melodic tracks; using '{melodic[0].name}'"
            )
        return melodic[0]

    def _to_score(self, events) -> List[ScoreNote]:
        notes: List[ScoreNote] = []
        truncated = 0
        cursor = 0

        for start, end, pitch in events:
            if notes and start <= notes[-1].position:
                # Same onset as the previous note (a chord); keep the first
                truncated += 1
                continue

            if start < cursor:
                notes[-1] = _with_length(notes[-1], start - notes[-1].position)
                truncated += 1
                cursor = start

            gap = start - cursor
            if gap > 0:
                if gap >= self.min_rest_ticks or not notes:
                    notes.append(ScoreNote.rest(len(notes), cursor, gap))
                else:
                    notes[-1] = _with_length(notes[-1], start - notes[-1].position)

            length = max(end - start, 1)
            notes.append(ScoreNote(len(notes), start, length, pitch))
            cursor = start + length

        if truncated:
            warnings.warn(f"{truncated} overlapping MIDI notes were truncated or dropped")
        return notes


LOADERS: Dict[str, ScoreLoader] = {
    ".json": JsonScoreLoader(),
    ".mid": MidiScoreLoader(),
    ".midi": MidiScoreLoader(),
}


def load_score(path: Union[str, Path]) -> List[ScoreNote]:
    """
    Load a score, picking the loader from the file suffix.

    Raises:
        ValueError: If the format is not supported
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    loader = LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ValueError(
            f"Unsupported score format: {path.suffix}. Supported: {sorted(LOADERS)}"
        )
    return loader.load(path)


def _with_length(note: ScoreNote, length: int) -> ScoreNote:
    return ScoreNote(note.index, note.position, length, note.pitch)
