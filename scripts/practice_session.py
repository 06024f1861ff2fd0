# ABOUTME: CLI that drives the adaptive engine with a simulated learner and inspects stored learner state.
# ABOUTME: Offers simulate, stats, export-logs, validate-generators and reset commands.

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from src.common.analytics import events_to_frame, export_events, skill_breakdown
from src.common.bandit import NumpyRandomSource, RandomSource, choose, clamp
from src.common.config import load_engine_config
from src.common.schemas import expected_response_time, now_ms
from src.common.storage import JsonFileStore
from src.curriculum import SKILLS, generate, validate_all_generators
from src.engine import AdaptiveEngine

console = Console()
app = typer.Typer(help="Simulate adaptive mental-arithmetic practice and inspect learner state.")

# Typical slips: off by a round number, a unit, or a wrong carry.
SLIP_OFFSETS = [10, -10, 1, -1, 2, 20, 100]


class SimulatedClock:
    """Epoch-ms clock advanced explicitly so long sessions run instantly."""

    def __init__(self, start: Optional[int] = None):
        self.now = start if start is not None else now_ms()

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def answer_probability(difficulty: int, mastery: float, skill_level: float) -> float:
    return clamp(skill_level - 0.12 * (difficulty - 1) + 0.3 * mastery, 0.05, 0.98)


def simulated_answer(correct_answer: float, correct: bool, rng: RandomSource) -> float:
    if correct:
        return correct_answer
    return correct_answer + choose(rng, SLIP_OFFSETS)


def _skill_list(skills: Optional[str]) -> List[str]:
    if not skills:
        return list(SKILLS)
    selected = [s.strip() for s in skills.split(",") if s.strip()]
    unknown = [s for s in selected if s not in SKILLS]
    if not selected:
        raise typer.BadParameter("No skills given")
    if unknown:
        raise typer.BadParameter(f"Unknown skills: {', '.join(unknown)}")
    return selected


def _open_engine(user_id: str, root: Path, config_path: Path, seed: Optional[int] = None, clock=now_ms) -> AdaptiveEngine:
    config = load_engine_config(config_path)
    rng = NumpyRandomSource(seed if seed is not None else config.seed)
    try:
        store = JsonFileStore(root, user_id)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--user-id") from exc
    return AdaptiveEngine(user_id=user_id, store=store, config=config, rng=rng, clock=clock)


@app.command()
def simulate(
    user_id: str = typer.Option("sim_learner", "--user-id", help="Learner identifier; state persists under --root."),
    attempts: int = typer.Option(50, "--attempts", min=1, help="Number of questions to answer."),
    skills: Optional[str] = typer.Option(None, "--skills", help="Comma-separated skill ids (default: all)."),
    skill_level: float = typer.Option(0.8, "--skill-level", help="Base probability the learner answers a level-1 question."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for the engine and the learner."),
    root: Path = typer.Option(Path("data/learners"), "--root", help="Directory for learner state."),
    config_path: Path = typer.Option(Path("configs/engine.yaml"), "--config", help="Engine YAML config."),
) -> None:
    """
    Run a simulated learner through the full attempt loop and summarize the session.
    """
    available = _skill_list(skills)
    clock = SimulatedClock()
    engine = _open_engine(user_id, root, config_path, seed, clock)
    learner_rng = NumpyRandomSource(None if seed is None else seed + 1)
    engine.start_session()

    reasons = {}
    for _ in range(attempts):
        if engine.should_insert_review() and engine.due_reviews():
            skill_id = engine.due_reviews()[0].skill_id
            reasons["inserted_review"] = reasons.get("inserted_review", 0) + 1
        else:
            decision = engine.select_next_skill(available)
            skill_id = decision.skill_id
            reasons[decision.reason] = reasons.get(decision.reason, 0) + 1

        plan = engine.plan_attempt(skill_id)
        question = generate(skill_id, plan.difficulty, learner_rng)
        p_correct = answer_probability(plan.difficulty, engine.scheduler.get_mastery(skill_id), skill_level)
        correct = learner_rng.random() < p_correct
        time_spent = expected_response_time(plan.difficulty) * (0.6 + learner_rng.random() * 0.8)
        hint_shown = engine.should_show_hint(plan, attempt_number=1, time_spent=time_spent)

        clock.advance(time_spent)
        engine.submit_answer(
            plan,
            question.q,
            question.a,
            simulated_answer(question.a, correct, learner_rng),
            response_time_sec=round(time_spent, 2),
            hint_used=hint_shown,
            hint=question.hint,
        )

    summary = engine.end_session()
    console.rule(f"[bold blue]Session {summary['session_id']}[/bold blue]")
    console.print(f"[bold]Learner:[/] {user_id}")
    console.print(
        f"[bold]Attempts:[/] {summary['questions_attempted']}  [bold]Accuracy:[/] {summary['accuracy']}%  "
        f"[bold]Avg time:[/] {summary['avg_time']}s  [bold]Best streak:[/] {summary['best_streak']}"
    )

    reason_table = Table(title="Skill selection reasons", show_header=True, header_style="bold magenta")
    reason_table.add_column("Reason")
    reason_table.add_column("Count", justify="right")
    for reason, count in sorted(reasons.items(), key=lambda kv: -kv[1]):
        reason_table.add_row(reason, str(count))
    console.print(reason_table)

    _print_skill_table(engine, available)
    for rec in engine.insights()["recommendations"]:
        console.print(f"[yellow]{rec['type']}[/yellow]: {rec['message']}")


def _print_skill_table(engine: AdaptiveEngine, skills: List[str]) -> None:
    breakdown = skill_breakdown(events_to_frame(engine.question_logs)).set_index("skill_id")
    table = Table(title="Skills", show_header=True, header_style="bold magenta")
    table.add_column("Skill")
    table.add_column("Mastery", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Next review")
    now = engine.clock()
    for row in engine.skill_mastery_data(skills):
        skill_id = row["skill_id"]
        accuracy = f"{breakdown.loc[skill_id, 'accuracy']:.0%}" if skill_id in breakdown.index else "-"
        item = engine.scheduler.reviews.get(skill_id)
        due = "-" if item is None else ("due" if item.next_review <= now else f"in {item.interval}d")
        table.add_row(skill_id, f"{row['mastery']:.2f}", str(row["attempts"]), accuracy, due)
    console.print(table)


@app.command()
def stats(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    skill: Optional[str] = typer.Option(None, "--skill", help="Show difficulty arms and error patterns for one skill."),
    root: Path = typer.Option(Path("data/learners"), "--root", help="Directory for learner state."),
    config_path: Path = typer.Option(Path("configs/engine.yaml"), "--config", help="Engine YAML config."),
) -> None:
    """
    Print mastery, review queue, and optionally per-skill bandit statistics.
    """
    engine = _open_engine(user_id, root, config_path)
    if not engine.question_logs:
        console.print(f"[yellow]No attempts stored for {user_id} under {root}[/yellow]")
        raise typer.Exit(code=1)

    console.rule(f"[bold blue]{user_id}[/bold blue]")
    console.print(
        f"[bold]Total questions:[/] {engine.profile.total_questions}  "
        f"[bold]Overall accuracy:[/] {engine.profile.overall_accuracy:.1%}  "
        f"[bold]Sessions:[/] {engine.profile.total_sessions}"
    )
    _print_skill_table(engine, list(SKILLS))

    if skill is None:
        return

    arm_table = Table(title=f"Difficulty arms for {skill}", show_header=True, header_style="bold magenta")
    for column in ("Difficulty", "Pulls", "Success rate", "Avg time", "Confidence"):
        arm_table.add_column(column, justify="right")
    for s in engine.difficulty_statistics(skill):
        arm_table.add_row(str(s.difficulty), str(s.pulls), f"{s.success_rate:.0%}", f"{s.avg_time:.1f}s", f"{s.confidence:.0f}")
    console.print(arm_table)

    error_table = Table(title=f"Error patterns for {skill}", show_header=True, header_style="bold magenta")
    error_table.add_column("Error tag")
    error_table.add_column("Count", justify="right")
    for row in engine.error_analytics(skill):
        error_table.add_row(row["error_tag"], str(row["count"]))
    console.print(error_table)


@app.command("export-logs")
def export_logs(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    output: Path = typer.Option(Path("reports/attempts.parquet"), "--output", help="Destination .parquet or .csv."),
    root: Path = typer.Option(Path("data/learners"), "--root", help="Directory for learner state."),
    config_path: Path = typer.Option(Path("configs/engine.yaml"), "--config", help="Engine YAML config."),
) -> None:
    """
    Export a learner's stored attempt log for offline analysis.
    """
    engine = _open_engine(user_id, root, config_path)
    path = export_events(engine.question_logs, output)
    console.print(f"[bold]Exported {len(engine.question_logs):,} attempts to {path}[/bold]")


@app.command("validate-generators")
def validate_generators(
    samples: int = typer.Option(20, "--samples", min=1, help="Questions sampled per difficulty level."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed."),
) -> None:
    """
    Check that every skill's generator gets harder as difficulty rises.
    """
    results = validate_all_generators(rng=NumpyRandomSource(seed), num_samples=samples)
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Skill")
    table.add_column("Status")
    for level in range(1, 6):
        table.add_column(f"D{level} max", justify="right")
    for result in results:
        status = "[green]pass[/green]" if result.passed else "[red]fail[/red]"
        table.add_row(result.skill_id, status, *(f"{result.levels[d].avg_max_number:.0f}" for d in range(1, 6)))
    console.print(table)

    failed = [r for r in results if not r.passed]
    for result in failed:
        for issue in result.issues:
            console.print(f"[red]{result.skill_id}[/red]: {issue}")
    console.print(f"[bold]{len(results) - len(failed)}/{len(results)} generators passed[/bold]")


@app.command()
def reset(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    root: Path = typer.Option(Path("data/learners"), "--root", help="Directory for learner state."),
    config_path: Path = typer.Option(Path("configs/engine.yaml"), "--config", help="Engine YAML config."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    """
    Erase all stored progress for a learner.
    """
    if not yes and not typer.confirm(f"Reset all progress for {user_id}? This cannot be undone."):
        raise typer.Exit(code=1)
    engine = _open_engine(user_id, root, config_path)
    engine.reset_progress()
    console.print(f"[bold]Progress reset for {user_id}[/bold]")


if __name__ == "__main__":
    app()
