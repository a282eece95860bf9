"""Tests for online position tracking."""

import math

import pytest

from score_follower.core import (
    CrossGraphReference,
    InvalidProbability,
    Observation,
    ScoreNote,
    StateSpaceCollapse,
    TrackingError,
)
from score_follower.compiler import CompilerConfig, compile_score
from score_follower.graph import HiddenState, ProbabilisticGraph, StateKind, StateTag
from score_follower.tracking import PositionTracker, create_tracker, log_probability_mass

C, D = 0.0, 2.0


@pytest.fixture
def score_with_rest():
    return [
        ScoreNote(0, 0, 480, 60),
        ScoreNote.rest(1, 480, 240),
        ScoreNote(2, 720, 480, 62),
    ]


@pytest.fixture
def compiled(score_with_rest):
    return compile_score(score_with_rest)


def performance(*parts):
    """Build an observation stream from (pitch or None, count) pairs."""
    stream = []
    for pitch, count in parts:
        obs = Observation.silent() if pitch is None else Observation.voiced(pitch)
        stream.extend([obs] * count)
    return stream


class TestTracking:
    """Test the running estimate over a sung performance."""

    def test_starts_before_singing(self, compiled):
        """Before any input the estimate is the start state."""
        tracker = compiled.create_tracker()

        estimate = tracker.current_estimate()
        assert estimate.is_start
        assert tracker.current_note is None
        assert tracker.steps == 0

    def test_follows_notes_and_silence(self, compiled):
        """Notes, the silence between them and the next note are followed in order."""
        tracker = compiled.create_tracker()
        estimates = [tracker.input_observation(obs) for obs in performance((C, 5), (None, 2), (D, 5))]

        assert [e.note_index for e in estimates[:5]] == [0] * 5
        assert all(e.kind is StateKind.NOTE for e in estimates[:5])

        assert all(e.is_silence for e in estimates[5:7])
        assert estimates[5].note_index == 0

        assert all(e.is_note and e.note_index == 2 for e in estimates[7:])
        assert tracker.current_note.index == 2
        assert tracker.steps == 12

    def test_distribution_stays_normalized(self, compiled):
        """The belief is renormalized after every observation."""
        tracker = compiled.create_tracker()
        for obs in performance((C, 3), (None, 3), (D, 3), (5.0, 2), (None, 4)):
            tracker.input_observation(obs)
            assert log_probability_mass(tracker.distribution()) == pytest.approx(0.0, abs=1e-9)

    def test_estimate_probability(self, compiled):
        """The estimate carries the highest belief."""
        tracker = compiled.create_tracker()
        estimate = tracker.input_observation(Observation.voiced(C))

        assert estimate.log_probability <= 0.0
        assert estimate.log_probability == pytest.approx(
            max(tracker.distribution().values())
        )

    def test_silence_before_singing_stays_on_start(self, compiled):
        """Silence before the first note keeps the start state."""
        tracker = compiled.create_tracker()
        for obs in performance((None, 5)):
            assert tracker.input_observation(obs).is_start

    def test_reset(self, compiled):
        """Reset returns the belief to the start state."""
        tracker = compiled.create_tracker()
        for obs in performance((C, 3)):
            tracker.input_observation(obs)

        tracker.reset()
        assert tracker.current_estimate().is_start
        assert tracker.distribution() == {compiled.start.index: 0.0}
        assert tracker.steps == 0

    def test_sessions_are_independent(self, compiled):
        """Trackers built from one compiled score do not share state."""
        first = compiled.create_tracker()
        second = create_tracker(compiled)
        for obs in performance((C, 3)):
            first.input_observation(obs)

        assert second.current_estimate().is_start
        assert first.current_note.index == 0

    def test_follows_a_scale(self):
        """A sung scale is followed note by note."""
        pitches = [60, 62, 64, 65, 67, 69, 71, 72]
        notes = [ScoreNote(i, i * 480, 480, p) for i, p in enumerate(pitches)]
        tracker = compile_score(notes).create_tracker()

        for index, pitch in enumerate(pitches):
            for _ in range(4):
                estimate = tracker.input_observation(Observation.voiced(pitch % 12))
            assert estimate.note_index == index

    def test_revision1_preset(self, score_with_rest):
        """The alternate tuning also reaches the last note."""
        compiled = compile_score(score_with_rest, config=CompilerConfig.preset("revision1"))
        tracker = compiled.create_tracker()
        for obs in performance((C, 5), (D, 5)):
            estimate = tracker.input_observation(obs)

        assert estimate.note_index == 2


class TestTrackingErrors:
    """Test failures that end a tracking session."""

    def test_collapse(self, score_with_rest):
        """A step that leaves no reachable state is reported."""
        compiled = compile_score(score_with_rest, config=CompilerConfig(start_self_loop=0.0))
        tracker = compiled.create_tracker()

        with pytest.raises(StateSpaceCollapse):
            tracker.input_observation(Observation.silent())

    def test_session_closed_after_error(self, score_with_rest):
        """After a failure the session needs a reset."""
        compiled = compile_score(score_with_rest, config=CompilerConfig(start_self_loop=0.0))
        tracker = compiled.create_tracker()

        with pytest.raises(StateSpaceCollapse):
            tracker.input_observation(Observation.silent())
        with pytest.raises(TrackingError, match="closed"):
            tracker.input_observation(Observation.voiced(C))

        tracker.reset()
        assert tracker.input_observation(Observation.voiced(C)).note_index == 0

    def test_emission_above_one_is_rejected(self):
        """Positive emission log-likelihoods are invalid."""
        graph = ProbabilisticGraph()
        start = graph.add_state(HiddenState(StateTag.start(), lambda obs: 0.0))
        note = ScoreNote(0, 0, 480, 60)
        bad = graph.add_state(HiddenState(StateTag.emitting(note), lambda obs: 1.0))
        graph.add_edge(start, bad, 0.0)
        tracker = PositionTracker(graph, start)

        with pytest.raises(InvalidProbability):
            tracker.input_observation(Observation.voiced(C))
        with pytest.raises(TrackingError):
            tracker.input_observation(Observation.voiced(C))

    def test_start_from_another_graph(self, compiled):
        """The start handle must belong to the tracked graph."""
        other = ProbabilisticGraph()
        handle = other.add_state(HiddenState(StateTag.start(), lambda obs: 0.0))

        with pytest.raises(CrossGraphReference):
            PositionTracker(compiled.graph, handle)


class TestTies:
    """Equal candidates resolve to the first one reached."""

    def test_first_seen_wins(self):
        """On equal belief the lower state index is reported."""
        graph = ProbabilisticGraph()
        start = graph.add_state(HiddenState(StateTag.start(), lambda obs: 0.0))
        first = graph.add_state(
            HiddenState(StateTag.emitting(ScoreNote(0, 0, 480, 60)), lambda obs: 0.0)
        )
        second = graph.add_state(
            HiddenState(StateTag.emitting(ScoreNote(1, 480, 480, 60)), lambda obs: 0.0)
        )
        graph.add_edge(start, first, math.log(0.5))
        graph.add_edge(start, second, math.log(0.5))
        tracker = PositionTracker(graph, start)

        estimate = tracker.input_observation(Observation.voiced(C))
        assert estimate.state_index == first.index
        assert estimate.log_probability == pytest.approx(math.log(0.5))
