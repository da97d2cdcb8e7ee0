"""
CLI runners for council execution.

Contains run_* functions that consume the deliberation event stream and
wrap it with CLI presentation (progress spinners, live per-model status).
"""

from rich.live import Live
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from deliberation.cli.presenters import build_model_panel, console, print_error, short_name
from deliberation.engine import CouncilRequest, reconstruct_outcome, run_council_streaming
from deliberation.models import CouncilOutcome, DeliberationEvent, EventType, Stage

STAGE_LABELS = {
    Stage.PREPROCESS: "Preprocessing conversation history...",
    Stage.STAGE1: "Stage 1: Collecting responses...",
    Stage.STAGE2: "Stage 2: Collecting peer rankings...",
    Stage.STAGE3: "Stage 3: Chairman synthesizing...",
}


def describe_stage_complete(event: DeliberationEvent) -> str:
    """One-line summary for a stage_complete event."""
    if event.stage is Stage.PREPROCESS:
        return "Preprocessing complete"
    if event.stage is Stage.STAGE1:
        return f"Stage 1 complete: {len(event.data)} responses"
    if event.stage is Stage.STAGE2:
        results, _ = event.data
        return f"Stage 2 complete: {len(results)} rankings"
    return "Stage 3 complete: Final answer ready"


async def run_council_with_progress(request: CouncilRequest) -> CouncilOutcome:
    """Run the council with a spinner per stage.

    Args:
        request: The turn to run

    Returns:
        CouncilOutcome rebuilt from the events shown
    """
    events: list[DeliberationEvent] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = None
        async for event in run_council_streaming(request):
            events.append(event)

            if event.type is EventType.STAGE_START:
                task = progress.add_task(f"[cyan]{STAGE_LABELS[event.stage]}", total=None)
            elif event.type is EventType.STAGE_COMPLETE:
                if task is not None:
                    progress.remove_task(task)
                    task = None
                console.print(f"[green]✓[/green] {describe_stage_complete(event)}")
            elif event.type is EventType.ERROR:
                if task is not None:
                    progress.remove_task(task)
                    task = None
                print_error(f"Error: {event.message}")

    return reconstruct_outcome(events)


class StageStatusBoard:
    """Tracks per-model progress within one stage for a Live display."""

    def __init__(self, stage: Stage):
        self.stage = stage
        self.received: dict[str, int] = {}

    def record_chunk(self, event: DeliberationEvent) -> None:
        self.received[event.model] = len(event.accumulated_text)

    def render(self) -> Table:
        """Build a table showing current status of every model heard from."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Model", style="bold")
        table.add_column("Status")

        if not self.received:
            table.add_row(
                STAGE_LABELS[self.stage], Spinner("dots", text="waiting...", style="yellow")
            )
        for model, chars in self.received.items():
            table.add_row(
                short_name(model),
                Spinner("dots", text=f"{chars:,} chars", style="yellow"),
            )
        return table

    def finish(self) -> Table:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Model", style="bold")
        table.add_column("Status")
        for model, chars in self.received.items():
            table.add_row(short_name(model), Text(f"✓ {chars:,} chars", style="green"))
        return table


async def run_council_streaming_display(request: CouncilRequest) -> CouncilOutcome:
    """
    Run the council showing live per-model progress.

    Each stage shows a spinner per model with the amount of text received so
    far; Stage 1 responses are rendered as panels as soon as the stage
    completes, and the chairman's synthesis streams token by token.

    Args:
        request: The turn to run

    Returns:
        CouncilOutcome rebuilt from the events shown
    """
    events: list[DeliberationEvent] = []
    board: StageStatusBoard | None = None
    live: Live | None = None

    def stop_live(final: Table | None = None) -> None:
        nonlocal live
        if live is not None:
            if final is not None:
                live.update(final)
            live.stop()
            live = None

    try:
        async for event in run_council_streaming(request):
            events.append(event)

            if event.type is EventType.STAGE_START:
                console.print(f"\n[bold cyan]━━━ {STAGE_LABELS[event.stage]} ━━━[/bold cyan]\n")
                if event.stage is Stage.STAGE3:
                    console.print(f"[grey62]{short_name(request.chairman_model)}:[/grey62] ", end="")
                    continue
                board = StageStatusBoard(event.stage)
                live = Live(board.render(), console=console, refresh_per_second=10)
                live.start()

            elif event.type is EventType.CHUNK:
                if event.stage is Stage.STAGE3:
                    console.print(Text(event.text, style="grey62"), end="")
                elif board is not None and live is not None:
                    board.record_chunk(event)
                    live.update(board.render())

            elif event.type is EventType.STAGE_COMPLETE:
                stop_live(board.finish() if board is not None else None)
                board = None
                if event.stage is Stage.STAGE1:
                    for result in event.data:
                        console.print(build_model_panel(result.model, result.response))
                elif event.stage is Stage.STAGE3:
                    console.print()
                console.print(f"[green]✓[/green] {describe_stage_complete(event)}")

            elif event.type is EventType.ERROR:
                stop_live()
                print_error(f"Error: {event.message}")
    finally:
        stop_live()

    return reconstruct_outcome(events)
