"""
Presentation functions for CLI output.

All print_* and display functions for Rich console output.
"""

from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from deliberation.cli.chat_commands import (
    CHAT_COMMANDS,
    format_chat_mode_line,
    suggest_chat_commands,
)
from deliberation.engine.prompts import PromptTemplate
from deliberation.models import (
    AggregateRanking,
    LabelMap,
    Stage1Result,
    Stage2Result,
    Stage3Result,
)

CHAT_THEME = Theme(
    {
        "chat.accent": "bold #5B8DEF",
        "chat.prompt": "bold #5B8DEF",
        "chat.meta": "dim",
        "chat.command": "#E0B15A",
        "chat.success": "green",
        "chat.error": "bold red",
    }
)

CHAT_BORDER_COLOR = "#5B8DEF"

# Shared console instance with chat theme
console = Console(theme=CHAT_THEME)


def short_name(model: str) -> str:
    """Model name without its provider prefix."""
    return model.split("/")[-1]


def print_chat_banner(
    title: str,
    conversation_id: str,
    resumed: bool,
    single_model: str | None = None,
    preprocess_model: str | None = None,
) -> None:
    """Show chat banner with conversation details."""
    status = "Resumed" if resumed else "Started"
    body = (
        f"[chat.meta]{status} conversation[/chat.meta]\n"
        f"[chat.accent]{title}[/chat.accent]\n"
        f"[chat.meta]ID: {conversation_id[:8]}[/chat.meta]\n"
        f"{format_chat_mode_line(single_model, preprocess_model)}"
    )
    console.print()
    console.print(
        Panel(
            body,
            title="[chat.accent]Council Chat[/chat.accent]",
            border_style=CHAT_BORDER_COLOR,
            padding=(1, 2),
        )
    )
    console.print(
        "[chat.meta]Commands: /help, /history, /use <id>, /new, /single, "
        "/attach <url>, /mode, /exit[/chat.meta]"
    )
    console.print()


def print_chat_help() -> None:
    """Print available chat commands."""
    console.print("[chat.accent]Chat commands[/chat.accent]")
    for command, description in CHAT_COMMANDS.items():
        console.print(f"[chat.command]/{command:<8}[/chat.command] {description}")
    console.print()


def print_chat_suggestions(prefix: str) -> None:
    """Print command suggestions based on a prefix."""
    suggestions = suggest_chat_commands(prefix)
    if not suggestions:
        console.print("[chat.error]No matching commands.[/chat.error]")
        console.print()
        return

    label = "Commands" if not prefix else f"Commands matching '{prefix}'"
    console.print(f"[chat.meta]{label}[/chat.meta]")
    for command in suggestions:
        console.print(f"[chat.command]/{command}[/chat.command]  {CHAT_COMMANDS[command]}")
    console.print()


def print_history_table(conversations: list) -> None:
    """Print a table of conversation history."""
    table = Table(title="Conversation History", show_header=True, header_style="chat.accent")
    table.add_column("ID", style="chat.accent", width=10)
    table.add_column("Title", style="white")
    table.add_column("Messages", justify="right", width=8)
    table.add_column("Created", style="chat.meta", width=19)

    for item in conversations:
        created = item.get("created_at", "").replace("T", " ")[:19]
        table.add_row(
            item["id"][:8],
            item.get("title", "New Conversation"),
            str(item.get("message_count", 0)),
            created,
        )

    console.print(table)
    console.print()


def print_stage1(results: Sequence[Stage1Result]) -> None:
    """Display Stage 1 results."""
    console.print("\n[bold cyan]━━━ STAGE 1: Individual Responses ━━━[/bold cyan]\n")
    for result in results:
        console.print(build_model_panel(result.model, result.response, full_name=True))
        console.print()


def format_parsed_ranking(result: Stage2Result, label_to_model: LabelMap) -> str:
    """De-anonymize a parsed ranking for display."""
    return " → ".join(
        short_name(label_to_model.get(label, label)) for label in result.parsed_ranking
    )


def print_stage2(
    results: Sequence[Stage2Result],
    label_to_model: LabelMap,
    aggregate: Sequence[AggregateRanking],
) -> None:
    """Display Stage 2 results."""
    console.print("\n[bold cyan]━━━ STAGE 2: Peer Rankings ━━━[/bold cyan]\n")

    # Show aggregate rankings table
    table = Table(title="Aggregate Rankings", show_header=True, header_style="bold magenta")
    table.add_column("Rank", style="cyan", justify="center", width=6)
    table.add_column("Model", style="green")
    table.add_column("Avg Position", justify="center", width=12)
    table.add_column("Votes", justify="center", width=6)

    for i, entry in enumerate(aggregate, 1):
        table.add_row(
            str(i),
            entry.model,
            f"{entry.average_rank:.2f}",
            str(entry.rankings_count),
        )

    console.print(table)
    console.print()

    # Show individual evaluations (condensed)
    console.print("[dim]Individual evaluations:[/dim]\n")
    for result in results:
        parsed_display = format_parsed_ranking(result, label_to_model) or "(no ranking found)"
        console.print(f"  [bold]{short_name(result.model)}[/bold]: {parsed_display}")

    console.print()


def print_stage3(result: Stage3Result) -> None:
    """Display Stage 3 results."""
    console.print("\n[bold cyan]━━━ STAGE 3: Chairman's Synthesis ━━━[/bold cyan]\n")
    console.print(
        Panel(
            Markdown(result.response),
            title=f"[bold green]Final Answer • {result.model}[/bold green]",
            border_style="green",
            padding=(1, 2),
        )
    )


def build_model_panel(
    model: str, content: str, color: str = "blue", full_name: bool = False
) -> Panel:
    """Build a panel with rendered markdown for a model response."""
    name = model if full_name else short_name(model)
    return Panel(
        Markdown(content) if content.strip() else Text("(empty)", style="dim"),
        title=f"[bold {color}]{name}[/bold {color}]",
        border_style=color if color else "white",
        padding=(1, 2),
    )


def print_query_header(
    question: str,
    council_models: Sequence[str],
    chairman_model: str,
    single_model: str | None = None,
    preprocess_model: str | None = None,
) -> None:
    """Print the query header with mode information."""
    console.print()
    console.print(
        Panel(
            f"[bold]{question}[/bold]",
            title="Query",
            border_style="white",
        )
    )
    console.print()
    if single_model:
        console.print(f"[dim]Model: {single_model}[/dim]")
        console.print("[dim]Mode: Single model[/dim]")
    else:
        console.print(f"[dim]Council: {', '.join(short_name(m) for m in council_models)}[/dim]")
        console.print(f"[dim]Chairman: {short_name(chairman_model)}[/dim]")
        mode = "Ranking"
        if preprocess_model:
            mode += f" [preprocess: {short_name(preprocess_model)}]"
        console.print(f"[dim]Mode: {mode}[/dim]")
    console.print()


def print_user_question_panel(question: str) -> None:
    """Print a user question panel."""
    console.print()
    console.print(
        Panel(
            f"[bold]{question}[/bold]",
            border_style=CHAT_BORDER_COLOR,
        )
    )
    console.print()


def print_models_table(council_models: Sequence[str], chairman_model: str, **extra: str | None) -> None:
    """Show the configured council, chairman and auxiliary models."""
    console.print()
    table = Table(title="LLM Council Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Role", style="dim", width=12)
    table.add_column("Model", style="green")

    for model in council_models:
        table.add_row("Member", model)

    table.add_row(
        "[bold yellow]Chairman[/bold yellow]", f"[bold yellow]{chairman_model}[/bold yellow]"
    )
    for role, model in extra.items():
        table.add_row(role.replace("_", " ").title(), model or "[dim]disabled[/dim]")

    console.print(table)
    console.print()


def print_available_models(models: list[dict[str, Any]]) -> None:
    """Show the OpenRouter model catalogue."""
    table = Table(title="Available Models", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="green")
    table.add_column("Name")
    table.add_column("Context", justify="right")

    for model in models:
        context = model.get("context_length")
        table.add_row(model["id"], model.get("name", ""), f"{context:,}" if context else "-")

    console.print(table)
    console.print(f"[dim]{len(models)} models[/dim]")


def print_prompt_template(stage: str, template: PromptTemplate) -> None:
    """Show a stage's default template and its placeholders."""
    console.print()
    console.print(f"[bold cyan]{template.name}[/bold cyan] [dim]({stage})[/dim]")
    console.print(f"[dim]{template.description}[/dim]\n")
    console.print(f"Required: {', '.join(template.required_variables)}")
    console.print(f"Available: {', '.join(template.available_variables)}\n")
    console.print(Panel(Text(template.template), border_style="dim", padding=(1, 2)))


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[chat.error]{message}[/chat.error]")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")
