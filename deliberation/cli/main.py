#!/usr/bin/env python3
"""
Deliberation CLI - Query a council of LLMs and synthesize their responses.

Usage:
    deliberation query "Your question here"
    deliberation query --simple "Quick question"
    deliberation models
    deliberation chat
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.logging import RichHandler
from rich.markdown import Markdown

from deliberation.adapters.json_storage import JsonConversationStore
from deliberation.adapters.openrouter_client import OpenRouterError, list_available_models
from deliberation.cli.chat_commands import attachment_from_url
from deliberation.cli.presenters import (
    console,
    print_available_models,
    print_error,
    print_models_table,
    print_prompt_template,
    print_query_header,
    print_stage1,
    print_stage2,
    print_stage3,
    print_success,
)
from deliberation.cli.runners import run_council_streaming_display, run_council_with_progress
from deliberation.engine import CouncilRequest
from deliberation.engine.prompts import PROMPT_TEMPLATES, validate_prompt_template
from deliberation.models import CustomPrompts
from deliberation.settings import (
    CHAIRMAN_MODEL,
    COUNCIL_MODELS,
    CUSTOM_PROMPTS,
    PREPROCESS_MODEL,
    REQUEST_TIMEOUT,
    STAGE_TIMEOUT,
    TITLE_MODEL,
)

app = typer.Typer(
    name="deliberation",
    help="Query multiple LLMs, let them rank each other, and get a synthesized answer.",
    add_completion=False,
    no_args_is_help=True,
)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def cli(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
):
    """Query multiple LLMs, let them rank each other, and get a synthesized answer."""
    configure_logging(verbose)


@app.command()
def chat(
    new: bool = typer.Option(
        False,
        "--new",
        help="Start a new conversation instead of resuming the latest.",
    ),
    single: str | None = typer.Option(
        None,
        "--single",
        help="Answer with this one model instead of the council",
    ),
):
    """
    Start an interactive chat session with conversation history.
    """
    from deliberation.cli.chat_session import run_chat_session

    asyncio.run(run_chat_session(start_new=new, single_model=single))


@app.command()
def query(
    question: str | None = typer.Argument(
        None,
        help="The question to ask the council",
    ),
    simple: bool = typer.Option(
        False,
        "--simple",
        "-s",
        help="Simple output mode (just the final answer)",
    ),
    final_only: bool = typer.Option(
        False,
        "--final-only",
        "-f",
        help="Show only the final answer (skip stages 1 & 2)",
    ),
    stream: bool = typer.Option(
        False,
        "--stream",
        help="Show live per-model progress and stream the synthesis token-by-token",
    ),
    single: str | None = typer.Option(
        None,
        "--single",
        help="Ask one model directly instead of the council",
    ),
    preprocess: str | None = typer.Option(
        None,
        "--preprocess",
        help="Model that condenses the --conversation history into the question",
    ),
    conversation: str | None = typer.Option(
        None,
        "--conversation",
        "-c",
        help="ID of a stored chat conversation to use as context",
    ),
    attach: list[str] | None = typer.Option(
        None,
        "--attach",
        "-a",
        help="Attach an image or PDF by http(s) or data: URL (repeatable)",
    ),
):
    """
    Query the LLM Council with a question.

    Examples:
        deliberation query "What is the best programming language?"
        deliberation query -s "Quick question"
        deliberation query -f "Just give me the answer"
        deliberation query --single openai/gpt-5.2 "Ask one model"
        deliberation query --attach https://example.com/chart.png "Explain this chart"
    """
    if not question:
        question = typer.prompt("Enter your question")

    attachments = tuple(attachment_from_url(url) for url in attach or [])
    request = CouncilRequest(
        query=question,
        council_models=list(COUNCIL_MODELS),
        chairman_model=CHAIRMAN_MODEL,
        single_model=single,
        preprocess_model=preprocess or PREPROCESS_MODEL,
        conversation_id=conversation,
        store=JsonConversationStore() if conversation else None,
        attachments=attachments,
        custom_prompts=CustomPrompts.from_mapping(CUSTOM_PROMPTS),
        timeout=REQUEST_TIMEOUT,
        stage_timeout=STAGE_TIMEOUT,
    )

    if not simple:
        print_query_header(
            question,
            request.council_models,
            request.chairman_model,
            single,
            request.preprocess_model if request.preprocessing_enabled else None,
        )

    if stream and not simple:
        outcome = asyncio.run(run_council_streaming_display(request))
    else:
        outcome = asyncio.run(run_council_with_progress(request))

    if outcome.failed:
        raise typer.Exit(1)

    if single:
        answer = outcome.stage1[0]
        if simple:
            console.print()
            console.print(Markdown(answer.response))
        elif not stream:
            print_stage1(outcome.stage1)
        return

    stage1, stage2, stage3, metadata = outcome
    if simple:
        # Just print the final answer as plain text
        console.print()
        console.print(Markdown(stage3.response))
    elif stream:
        # Streaming display already showed stages 1 and 3
        if not final_only:
            print_stage2(stage2, metadata.label_to_model, metadata.aggregate_rankings)
        print_stage3(stage3)
    elif final_only:
        print_stage3(stage3)
    else:
        print_stage1(stage1)
        print_stage2(stage2, metadata.label_to_model, metadata.aggregate_rankings)
        print_stage3(stage3)


@app.command()
def models(
    available: bool = typer.Option(
        False,
        "--available",
        help="List every model OpenRouter offers instead of the configuration",
    ),
):
    """Show the current council configuration."""
    if not available:
        print_models_table(
            COUNCIL_MODELS,
            CHAIRMAN_MODEL,
            title=TITLE_MODEL,
            preprocess=PREPROCESS_MODEL,
        )
        return

    try:
        catalogue = asyncio.run(list_available_models())
    except OpenRouterError as e:
        print_error(f"Error: {e}")
        raise typer.Exit(1) from e
    print_available_models(catalogue)


@app.command()
def prompts(
    stage: str | None = typer.Argument(
        None,
        help="Stage to show: stage1, stage2, stage3 or preprocessing",
    ),
    check: Path | None = typer.Option(
        None,
        "--check",
        help="Validate a custom template file against the stage's required placeholders",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
):
    """
    Show default prompt templates, or validate a custom one.

    Examples:
        deliberation prompts
        deliberation prompts stage2
        deliberation prompts stage2 --check my_ranking_prompt.txt
    """
    if stage is None:
        if check is not None:
            print_error("Pass the stage the template is for, e.g. 'prompts stage2 --check FILE'.")
            raise typer.Exit(2)
        for name, template in PROMPT_TEMPLATES.items():
            console.print(f"[bold cyan]{name}[/bold cyan]  {template.name}")
            console.print(f"  [dim]Required: {', '.join(template.required_variables)}[/dim]")
        return

    if stage not in PROMPT_TEMPLATES:
        print_error(f"Unknown stage: {stage}. Choose from {', '.join(PROMPT_TEMPLATES)}.")
        raise typer.Exit(2)

    template = PROMPT_TEMPLATES[stage]
    if check is None:
        print_prompt_template(stage, template)
        return

    valid, missing = validate_prompt_template(check.read_text(), template.required_variables)
    if not valid:
        placeholders = ", ".join(f"{{{name}}}" for name in missing)
        print_error(f"{check} is missing required placeholders: {placeholders}")
        raise typer.Exit(1)
    print_success(f"{check} is a valid {stage} template")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
