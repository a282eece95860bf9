"""Tests for score compilation."""

import math

import pytest

from score_follower.core import (
    EmptyScore,
    InvalidRuleProbability,
    InvalidScore,
    ProbabilityOverflow,
    ProbabilityUnderflow,
    RuleViolation,
    ScoreNote,
)
from score_follower.compiler import (
    CompilerConfig,
    Contribution,
    MINIMAL_RULES,
    STANDARD_RULES,
    ScoreCompiler,
    compile_score,
    self_loop,
)
from score_follower.graph import StateKind


@pytest.fixture
def score_with_rest():
    """C4 quarter, eighth rest, D4 quarter."""
    return [
        ScoreNote(0, 0, 480, 60),
        ScoreNote.rest(1, 480, 240),
        ScoreNote(2, 720, 480, 62),
    ]


@pytest.fixture
def scale():
    pitches = [60, 62, 64, 65, 67, 69, 71, 72]
    return [ScoreNote(i, i * 480, 480, p) for i, p in enumerate(pitches)]


def edge_probability(compiled, source, target):
    return math.exp(compiled.graph.outgoing(source.index)[target.index])


def split_contributions(contributions):
    """Sum contributions per target, separately for direct and via-silence routes."""
    direct, via_silence = {}, {}
    for c in contributions:
        bucket = via_silence if c.via_silence else direct
        bucket[c.target] = bucket.get(c.target, 0.0) + c.probability
    return direct, via_silence


class TestCompileLayout:
    """Test the states and edges produced for a small score."""

    def test_state_layout(self, score_with_rest):
        """Start, one state per sounding note, then silence states."""
        compiled = compile_score(score_with_rest)

        assert compiled.start.index == 0
        assert compiled.graph.state(compiled.start).tag.kind is StateKind.START
        assert set(compiled.note_states) == {0, 2}
        assert set(compiled.silence_states) == {0}
        assert compiled.summary() == {
            "notes": 3,
            "sounding_notes": 2,
            "states": 4,
            "silence_states": 1,
            "edges": 11,
        }

    def test_start_edges(self, score_with_rest):
        """Start waits or enters the first window, weighted by length."""
        compiled = compile_score(score_with_rest)
        start = compiled.start
        n0, n2 = compiled.state_for_note(0), compiled.state_for_note(2)

        assert edge_probability(compiled, start, start) == pytest.approx(0.6)
        assert edge_probability(compiled, start, n0) == pytest.approx(0.4 * 480 / 540)
        assert edge_probability(compiled, start, n2) == pytest.approx(0.4 * 60 / 540)

    def test_note_edges_through_silence(self, score_with_rest):
        """Crossing the rest is split between a direct and a silent route."""
        compiled = compile_score(score_with_rest)
        n0, n2 = compiled.state_for_note(0), compiled.state_for_note(2)
        silence = compiled.silence_for_note(0)
        rest_silence = 0.3 + 0.35 * 240 / 720

        assert edge_probability(compiled, n0, n0) == pytest.approx(0.33)
        assert edge_probability(compiled, n0, compiled.start) == pytest.approx(0.05)
        assert edge_probability(compiled, n0, n2) == pytest.approx(0.62 * (1 - rest_silence))
        assert edge_probability(compiled, n0, silence) == pytest.approx(0.62 * rest_silence)
        assert edge_probability(compiled, silence, silence) == pytest.approx(0.3)
        assert edge_probability(compiled, silence, n2) == pytest.approx(0.7)

    def test_terminal_edges(self, score_with_rest):
        """The last note loops or returns to start."""
        compiled = compile_score(score_with_rest)
        n2 = compiled.state_for_note(2)

        assert compiled.silence_for_note(2) is None
        assert edge_probability(compiled, n2, n2) == pytest.approx(0.33)
        assert edge_probability(compiled, n2, compiled.start) == pytest.approx(0.67)

    def test_rest_has_no_state(self, score_with_rest):
        """Rests are not states of the model."""
        compiled = compile_score(score_with_rest)
        with pytest.raises(KeyError):
            compiled.state_for_note(1)

    def test_contributions_are_recorded(self, score_with_rest):
        """Accepted rule contributions are kept per source state."""
        compiled = compile_score(score_with_rest)
        n0 = compiled.state_for_note(0)

        contributions = compiled.contributions[n0.index]
        assert sum(c.probability for c in contributions) == pytest.approx(1.0)
        assert any(c.via_silence for c in contributions)


class TestRoundTrip:
    """The graph carries exactly the mass the rules contributed."""

    @pytest.mark.parametrize("fixture", ["score_with_rest", "scale"])
    def test_outgoing_mass_matches_contributions(self, fixture, request):
        """Each source's outgoing mass equals its summed contributions."""
        compiled = compile_score(request.getfixturevalue(fixture))

        assert set(compiled.contributions) == {
            compiled.start.index,
            *(h.index for h in compiled.note_states.values()),
        }
        for source, contributions in compiled.contributions.items():
            total = sum(c.probability for c in contributions)
            assert math.exp(compiled.graph.outgoing_mass(source)) == pytest.approx(total)

    @pytest.mark.parametrize("fixture", ["score_with_rest", "scale"])
    def test_edges_match_contributions(self, fixture, request):
        """Direct edges and silence edges reproduce each contribution."""
        compiled = compile_score(request.getfixturevalue(fixture))
        graph = compiled.graph
        silence_self_loop = CompilerConfig().silence_self_loop

        def handle(target):
            return compiled.start if target is None else compiled.state_for_note(target)

        for note_index, source in compiled.note_states.items():
            direct, via_silence = split_contributions(compiled.contributions[source.index])

            for target, p in direct.items():
                assert edge_probability(compiled, source, handle(target)) == pytest.approx(p)

            silence = compiled.silence_for_note(note_index)
            if not via_silence:
                assert silence is None
                continue

            total = sum(via_silence.values())
            assert edge_probability(compiled, source, silence) == pytest.approx(total)
            assert edge_probability(compiled, silence, silence) == pytest.approx(silence_self_loop)
            for target, p in via_silence.items():
                assert edge_probability(compiled, silence, handle(target)) == pytest.approx(
                    p * (1 - silence_self_loop) / total
                )
            assert len(graph.outgoing(silence.index)) == len(via_silence) + 1


class TestMassConservation:
    """Every compiled state must have normalized outgoing mass."""

    @pytest.mark.parametrize("preset", ["standard", "revision1"])
    def test_scale_is_normalized(self, scale, preset):
        """All states sum to 1 under both presets."""
        compiled = compile_score(scale, config=CompilerConfig.preset(preset))

        for state in compiled.graph.states:
            assert compiled.graph.outgoing_mass(state.index) == pytest.approx(0.0, abs=1e-9)

    def test_measure_jumps_create_silence_states(self, scale):
        """Measure jumps leave through the note's silence state."""
        compiled = compile_score(scale)

        # Every non-terminal note moves forward partly through silence
        assert set(compiled.silence_states) == set(range(7))
        n5 = compiled.state_for_note(5)
        silence = compiled.silence_for_note(5)
        targets = compiled.graph.outgoing(silence.index)
        assert compiled.state_for_note(4).index in targets
        assert compiled.state_for_note(0).index in targets
        assert silence.index in compiled.graph.outgoing(n5.index)

    def test_minimal_rules(self, scale):
        """Without the stop rule, inner notes never return to start."""
        compiled = compile_score(scale, rules=MINIMAL_RULES)
        n3 = compiled.state_for_note(3)

        assert compiled.start.index not in compiled.graph.outgoing(n3.index)

    def test_single_note_score(self):
        """A single note is both first and terminal."""
        compiled = compile_score([ScoreNote(0, 0, 480, 67)])
        n0 = compiled.state_for_note(0)

        assert edge_probability(compiled, compiled.start, n0) == pytest.approx(0.4)
        assert edge_probability(compiled, n0, compiled.start) == pytest.approx(0.67)

    def test_leading_rest(self):
        """A leading rest does not hide the first note from start."""
        notes = [ScoreNote.rest(0, 0, 960), ScoreNote(1, 960, 480, 60)]
        compiled = compile_score(notes)

        assert list(compiled.note_states) == [1]
        assert edge_probability(
            compiled, compiled.start, compiled.state_for_note(1)
        ) == pytest.approx(0.4)


class TestCompileErrors:
    """Test score validation and rule violations."""

    def test_empty_score(self):
        """An empty score cannot be compiled."""
        with pytest.raises(EmptyScore):
            compile_score([])

    def test_only_rests(self):
        """A score of rests has nothing to follow."""
        with pytest.raises(EmptyScore):
            compile_score([ScoreNote.rest(0, 0, 480)])

    def test_index_must_match_ordinal(self):
        """Note indices must equal their position in the list."""
        with pytest.raises(InvalidScore, match="index"):
            compile_score([ScoreNote(1, 0, 480, 60)])

    def test_notes_must_be_ordered(self):
        """Notes must be sorted by position."""
        notes = [ScoreNote(0, 480, 480, 60), ScoreNote(1, 0, 480, 62)]
        with pytest.raises(InvalidScore, match="ordered"):
            compile_score(notes)

    def test_no_rules(self):
        """A compiler needs at least one rule."""
        with pytest.raises(ValueError):
            ScoreCompiler(rules=())

    def test_underflow(self, score_with_rest):
        """Unassigned mass at the start state is reported without a note index."""
        with pytest.raises(ProbabilityUnderflow) as excinfo:
            compile_score(score_with_rest, rules=(self_loop,))
        assert excinfo.value.note_index is None

    def test_overflow(self, score_with_rest):
        """Contributions above 1 are reported."""
        def greedy(context):
            yield Contribution.to_start(0.9)

        with pytest.raises(ProbabilityOverflow) as excinfo:
            compile_score(score_with_rest, rules=(greedy, self_loop))
        assert excinfo.value.note_index is None

    @pytest.mark.parametrize("probability", [1.5, -0.1, float("nan")])
    def test_rule_probability_out_of_range(self, score_with_rest, probability):
        """A single contribution outside [0, 1] is rejected."""
        def broken(context):
            yield Contribution.to_start(probability)

        with pytest.raises(InvalidRuleProbability):
            compile_score(score_with_rest, rules=(broken,))

    def test_start_cannot_route_through_silence(self, score_with_rest):
        """The start state has no silence state."""
        def silent_start(context):
            if context.is_start:
                yield Contribution(0, 0.1, True)

        with pytest.raises(RuleViolation, match="through silence"):
            compile_score(score_with_rest, rules=(silent_start,) + STANDARD_RULES)

    def test_rule_cannot_target_a_rest(self, score_with_rest):
        """Rules may only target sounding notes or start."""
        def to_rest(context):
            yield Contribution(1, 0.1)

        with pytest.raises(RuleViolation, match="no emitting state"):
            compile_score(score_with_rest, rules=(to_rest,) + STANDARD_RULES)

    def test_verification_can_be_disabled(self, score_with_rest):
        """verify=False skips the graph check."""
        config = CompilerConfig(verify=False)
        compiled = compile_score(score_with_rest, config=config)
        assert len(compiled.graph) == 4


class TestCompilerConfig:
    """Test configuration presets and validation."""

    def test_presets(self):
        """Both tunings are available by name."""
        assert CompilerConfig.preset("standard") == CompilerConfig()
        revision1 = CompilerConfig.preset("revision1")
        assert revision1.start_self_loop == 0.8
        assert revision1.note_pitch_stddev == 0.6
        assert revision1.silence_emission_probability == 0.3

    def test_unknown_preset(self):
        """Unknown preset names are reported."""
        with pytest.raises(ValueError, match="Unknown preset"):
            CompilerConfig.preset("fast")

    def test_invalid_probability(self):
        """Probabilities above 1 are rejected."""
        with pytest.raises(ValueError, match="note_self_loop"):
            CompilerConfig(note_self_loop=1.5)

    def test_invalid_length(self):
        """Window lengths must be positive."""
        with pytest.raises(ValueError, match="max_skip_ticks"):
            CompilerConfig(max_skip_ticks=0)

    @pytest.mark.parametrize("name", ["distance_discount", "same_pitch_discount"])
    def test_zero_discount_is_rejected(self, name):
        """A zero discount could leave the forward rule with no weight."""
        with pytest.raises(ValueError, match=name):
            CompilerConfig(**{name: 0.0})

    def test_zero_discount_never_reaches_compile(self):
        """Repeated pitches with a zero discount fail at configuration, not in the rules."""
        notes = [ScoreNote(0, 0, 480, 60), ScoreNote(1, 480, 480, 60)]
        with pytest.raises(ValueError, match="same_pitch_discount"):
            compile_score(notes, config=CompilerConfig().with_overrides(same_pitch_discount=0.0))

    def test_with_overrides(self):
        """Overrides produce a copy with the field replaced."""
        config = CompilerConfig().with_overrides(stop_probability=0.1)
        assert config.stop_probability == 0.1
        assert config.to_dict()["stop_probability"] == 0.1
