"""Command-line interface for Score Follower.

Provides commands for:
- inspect: Compile a score and show the resulting model
- replay: Track a recorded observation sequence (JSON)
- follow: Track a singing recording against a score
"""

import json
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="score-follower",
    help="Follow a singer's position in a score",
    rich_markup_mode="markdown",
)
console = Console()

FOLLOW_METHODS = ("window", "pyin", "yin")


@dataclass
class StageTimings:
    """Track timing of processing stages."""

    stages: Dict[str, float] = field(default_factory=dict)
    _current_stage: Optional[str] = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)

    def start(self, stage: str) -> None:
        """Start timing a stage."""
        self._current_stage = stage
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        """Stop timing the current stage, return duration."""
        if self._current_stage is None:
            return 0.0
        duration = time.perf_counter() - self._start_time
        self.stages[self._current_stage] = duration
        self._current_stage = None
        return duration

    @property
    def total_time(self) -> float:
        """Get total time across all stages."""
        return sum(self.stages.values())

    def print_summary(self) -> None:
        """Print timing summary to console."""
        console.print("\n[bold]Timing Summary:[/bold]")
        for stage, duration in self.stages.items():
            console.print(f"  {stage}: {duration * 1000:.1f}ms")
        console.print(f"  [bold]Total: {self.total_time * 1000:.1f}ms[/bold]")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "stages": self.stages,
            "total_time": self.total_time,
        }


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _compile(score: Path, preset: str, rules: Optional[str], timings: StageTimings):
    """Load and compile a score; errors surface as exceptions."""
    from .compiler import CompilerConfig, ScoreCompiler, STANDARD_RULES, rules_from_names
    from .input import load_score

    timings.start("load score")
    notes = load_score(score)
    timings.stop()

    rule_set = rules_from_names(rules.split(",")) if rules else STANDARD_RULES
    compiler = ScoreCompiler(rules=rule_set, config=CompilerConfig.preset(preset))

    timings.start("compile")
    compiled = compiler.compile(notes)
    timings.stop()
    return compiled


def _estimate_dict(step: int, estimate, time_s: Optional[float] = None) -> Dict[str, Any]:
    result = {
        "step": step,
        "kind": estimate.kind.value,
        "note_index": estimate.note_index,
        "state_index": estimate.state_index,
    }
    if time_s is not None:
        result["time"] = round(time_s, 4)
    return result


@app.command()
def inspect(
    score: Path = typer.Argument(..., help="Score file (JSON or MIDI)"),
    preset: str = typer.Option(
        "standard", "--preset", "-p", help="Tuning preset (standard, revision1)"
    ),
    rules: Optional[str] = typer.Option(
        None, "--rules", "-r", help="Comma-separated rule names, in order. Default: standard set"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
):
    """Compile a score and show the model's states.

    **Examples:**

        score-follower inspect song.json

        score-follower inspect song.mid --preset revision1 --json
    """
    from .core import ScoreFollowerError

    _configure_logging(verbose)
    timings = StageTimings()

    try:
        compiled = _compile(score, preset, rules, timings)
    except (ScoreFollowerError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        result = {
            "score": str(score),
            "preset": preset,
            "summary": compiled.summary(),
            "timings": timings.to_dict(),
        }
        typer.echo(json.dumps(result, indent=2))
        return

    console.print(f"[green]Compiled {score}[/green]")
    for key, value in compiled.summary().items():
        console.print(f"  {key}: {value}")
    if verbose:
        _show_states_table(compiled)
    timings.print_summary()


@app.command()
def replay(
    score: Path = typer.Argument(..., help="Score file (JSON or MIDI)"),
    observations: Path = typer.Argument(
        ..., help="JSON list of pitch classes in [0, 12), null for silence"
    ),
    preset: str = typer.Option(
        "standard", "--preset", "-p", help="Tuning preset (standard, revision1)"
    ),
    rules: Optional[str] = typer.Option(
        None, "--rules", "-r", help="Comma-separated rule names, in order. Default: standard set"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
):
    """Track a recorded observation sequence against a score."""
    from .core import Observation, ScoreFollowerError

    _configure_logging(verbose)
    timings = StageTimings()

    try:
        compiled = _compile(score, preset, rules, timings)
        with open(observations, encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, list):
            raise ValueError("Observation file must contain a JSON list")
        stream = [Observation.silent() if x is None else Observation.voiced(x) for x in raw]

        timings.start("track")
        tracker = compiled.create_tracker()
        estimates = [tracker.input_observation(obs) for obs in stream]
        timings.stop()
    except (ScoreFollowerError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(
            {
                "score": str(score),
                "steps": [_estimate_dict(i, est) for i, est in enumerate(estimates)],
                "final": _estimate_dict(len(estimates) - 1, estimates[-1]) if estimates else None,
            },
            indent=2,
        ))
        return

    _show_changes_table(
        [(str(i), stream[i].pitch_name, est) for i, est in enumerate(estimates)],
        first_column="Step",
    )
    if estimates:
        console.print(f"[green]Final position:[/green] {estimates[-1]}")
    if verbose:
        timings.print_summary()


@app.command()
def follow(
    score: Path = typer.Argument(..., help="Score file (JSON or MIDI)"),
    audio_file: Path = typer.Argument(..., help="Recording of the singer (WAV, FLAC, ...)"),
    preset: str = typer.Option(
        "standard", "--preset", "-p", help="Tuning preset (standard, revision1)"
    ),
    rules: Optional[str] = typer.Option(
        None, "--rules", "-r", help="Comma-separated rule names, in order. Default: standard set"
    ),
    window_size: int = typer.Option(
        2048, "--window", "-w", help="Analysis window in samples"
    ),
    hop_length: int = typer.Option(
        1024, "--hop", help="Hop between windows in samples"
    ),
    silence_db: float = typer.Option(
        -40.0, "--silence-db", help="Windows quieter than this (dBFS) count as silence"
    ),
    method: str = typer.Option(
        "window", "--method", "-m", help="Pitch detection: window (live, YIN per window), pyin or yin (whole signal)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
):
    """Track a singing recording against a score, window by window.

    **Examples:**

        score-follower follow song.json take1.wav

        score-follower follow song.mid take1.wav --hop 512 --json

        score-follower follow song.json take1.wav --method pyin
    """
    from .analysis import PitchAnalyzer
    from .core import ScoreFollowerError
    from .input import AudioLoader

    _configure_logging(verbose)
    timings = StageTimings()

    try:
        if method not in FOLLOW_METHODS:
            raise ValueError(f"Unknown method: {method}. Available: {list(FOLLOW_METHODS)}")
        compiled = _compile(score, preset, rules, timings)

        timings.start("load audio")
        loader = AudioLoader()
        audio, sr = loader.load(str(audio_file))
        timings.stop()

        if verbose and not json_output:
            console.print(f"  Duration: {loader.get_duration(audio, sr):.2f}s, Sample rate: {sr}Hz")

        analyzer = PitchAnalyzer(sr=sr, silence_db=silence_db)
        tracker = compiled.create_tracker()
        changes: List[Dict[str, Any]] = []
        rows = []

        if method == "window":
            stream = analyzer.iter_observations(audio, window_size, hop_length)
        else:
            stream = analyzer.iter_track(audio, hop_length, method=method)

        timings.start("track")
        for step, (time_s, observation) in enumerate(stream):
            previous = tracker.current_estimate()
            estimate = tracker.input_observation(observation)
            if estimate.state_index != previous.state_index:
                changes.append(_estimate_dict(step, estimate, time_s))
                rows.append((f"{time_s:.2f}s", observation.pitch_name, estimate))
        timings.stop()
    except (ScoreFollowerError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(
            {
                "score": str(score),
                "audio": str(audio_file),
                "steps": tracker.steps,
                "changes": changes,
                "timings": timings.to_dict(),
            },
            indent=2,
        ))
        return

    _show_changes_table(rows, first_column="Time")
    console.print(f"[green]Final position:[/green] {tracker.current_estimate()}")
    if verbose:
        timings.print_summary()


def _show_states_table(compiled):
    """Display the model's states in a table."""
    graph = compiled.graph
    table = Table(title="States")
    table.add_column("#", style="cyan")
    table.add_column("State", style="green")
    table.add_column("Out", style="yellow")
    table.add_column("Targets", style="magenta")

    for state in graph.states:
        edges = graph.outgoing(state.index)
        targets = ", ".join(
            f"{graph.state(j).tag.label}:{_probability(lp):.3f}" for j, lp in edges.items()
        )
        table.add_row(str(state.index), state.tag.label, str(len(edges)), targets)

    console.print(table)


def _show_changes_table(rows, first_column: str):
    """Display position changes in a table."""
    table = Table(title="Position")
    table.add_column(first_column, style="cyan")
    table.add_column("Heard", style="yellow")
    table.add_column("Estimate", style="green")

    for when, heard, estimate in rows:
        table.add_row(when, heard, str(estimate))

    console.print(table)


def _probability(log_p: float) -> float:
    return math.exp(log_p)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
