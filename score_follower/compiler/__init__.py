"""Compiler layer - score to probabilistic graph.

Pipeline: ScoreNotes → TransitionRules (ordered) → ProbabilisticGraph + start state
"""

from .config import CompilerConfig, PRESETS
from .emission import FoldedNormalEmission, SilenceEmission, note_emission
from .rules import (
    Contribution,
    RuleContext,
    TransitionRule,
    self_loop,
    stop_singing,
    first_note_in_measure,
    first_note_in_previous_measure,
    restart_from_first_note,
    forward_notes,
    terminal_to_start,
    silence_after_note,
    silence_after_rest,
    STANDARD_RULES,
    MINIMAL_RULES,
    RULES_BY_NAME,
    rules_from_names,
)
from .compiler import ScoreCompiler, CompiledScore, compile_score

__all__ = [
    # Configuration
    "CompilerConfig",
    "PRESETS",
    # Emission
    "FoldedNormalEmission",
    "SilenceEmission",
    "note_emission",
    # Rules
    "Contribution",
    "RuleContext",
    "TransitionRule",
    "self_loop",
    "stop_singing",
    "first_note_in_measure",
    "first_note_in_previous_measure",
    "restart_from_first_note",
    "forward_notes",
    "terminal_to_start",
    "silence_after_note",
    "silence_after_rest",
    "STANDARD_RULES",
    "MINIMAL_RULES",
    "RULES_BY_NAME",
    "rules_from_names",
    # Compiler
    "ScoreCompiler",
    "CompiledScore",
    "compile_score",
]
