"""
Chat session management for interactive REPL mode.

Contains ChatState, command handlers, and run_chat_session.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

from deliberation.adapters.json_storage import JsonConversationStore
from deliberation.cli.chat_commands import (
    CHAT_COMMANDS,
    attachment_from_url,
    build_chat_prompt,
    format_chat_mode_line,
    parse_chat_command,
)
from deliberation.cli.presenters import (
    console,
    print_chat_banner,
    print_chat_help,
    print_chat_suggestions,
    print_history_table,
    print_stage1,
    print_stage2,
    print_stage3,
    print_user_question_panel,
)
from deliberation.cli.runners import run_council_with_progress
from deliberation.engine import CouncilRequest, generate_conversation_title
from deliberation.models import Attachment, CustomPrompts
from deliberation.settings import (
    CHAIRMAN_MODEL,
    COUNCIL_MODELS,
    CUSTOM_PROMPTS,
    PREPROCESS_MODEL,
    REQUEST_TIMEOUT,
    STAGE_TIMEOUT,
)


@dataclass
class ChatState:
    """Mutable state for the chat REPL session."""

    store: JsonConversationStore
    single_model: str | None = None
    preprocess_model: str | None = PREPROCESS_MODEL
    conversation_id: str = ""
    conversation: dict[str, Any] | None = None
    title: str = field(default="New Conversation")
    pending_attachments: list[Attachment] = field(default_factory=list)


def resolve_conversation_id(prefix: str, conversations: list) -> str | None:
    """Resolve a conversation ID by prefix."""
    matches = [item["id"] for item in conversations if item["id"].startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print("[chat.error]Multiple conversations match that prefix.[/chat.error]")
        return None
    console.print("[chat.error]No conversation matches that ID prefix.[/chat.error]")
    return None


def build_request(state: ChatState, question: str) -> CouncilRequest:
    """Assemble the CouncilRequest for one chat turn."""
    return CouncilRequest(
        query=question,
        council_models=list(COUNCIL_MODELS),
        chairman_model=CHAIRMAN_MODEL,
        single_model=state.single_model,
        preprocess_model=state.preprocess_model,
        conversation_id=state.conversation_id,
        store=state.store,
        attachments=tuple(state.pending_attachments),
        custom_prompts=CustomPrompts.from_mapping(CUSTOM_PROMPTS),
        timeout=REQUEST_TIMEOUT,
        stage_timeout=STAGE_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Helpers to reduce repeated argument passing
# ---------------------------------------------------------------------------


def _print_mode(state: ChatState) -> None:
    """Print the current mode line."""
    console.print(format_chat_mode_line(state.single_model, state.preprocess_model))


def _print_banner(state: ChatState, resumed: bool) -> None:
    """Print the chat banner."""
    print_chat_banner(
        state.title,
        state.conversation_id,
        resumed=resumed,
        single_model=state.single_model,
        preprocess_model=state.preprocess_model,
    )


def _start_conversation(state: ChatState) -> None:
    state.conversation_id = str(uuid.uuid4())
    state.conversation = state.store.create_conversation(state.conversation_id)
    state.title = state.conversation.get("title", "New Conversation")
    state.pending_attachments.clear()


# ---------------------------------------------------------------------------
# Command handlers - each returns True to continue the REPL, False to exit.
# ---------------------------------------------------------------------------


def cmd_exit(state: ChatState, argument: str | None) -> bool:
    console.print("[chat.meta]Exiting chat.[/chat.meta]")
    return False


def cmd_help(state: ChatState, argument: str | None) -> bool:
    print_chat_help()
    return True


def cmd_history(state: ChatState, argument: str | None) -> bool:
    print_history_table(state.store.list_conversations())
    return True


def cmd_use(state: ChatState, argument: str | None) -> bool:
    if not argument:
        console.print("[chat.error]Usage: /use <id>[/chat.error]")
        return True
    resolved = resolve_conversation_id(argument, state.store.list_conversations())
    if resolved:
        conversation = state.store.get_conversation(resolved)
        if conversation is None:
            console.print("[chat.error]Conversation not found.[/chat.error]")
            return True
        state.conversation_id = resolved
        state.conversation = conversation
        state.title = conversation.get("title", "New Conversation")
        state.pending_attachments.clear()
        _print_banner(state, resumed=True)
    return True


def cmd_new(state: ChatState, argument: str | None) -> bool:
    _start_conversation(state)
    _print_banner(state, resumed=False)
    return True


def cmd_single(state: ChatState, argument: str | None) -> bool:
    if not argument:
        console.print("[chat.error]Usage: /single <model>|off[/chat.error]")
        return True
    state.single_model = None if argument == "off" else argument
    _print_mode(state)
    return True


def cmd_attach(state: ChatState, argument: str | None) -> bool:
    if not argument:
        console.print("[chat.error]Usage: /attach <url>[/chat.error]")
        return True
    attachment = attachment_from_url(argument)
    if not attachment.is_remote:
        console.print("[chat.error]Only http(s) and data: URLs can be attached.[/chat.error]")
        return True
    state.store.add_conversation_attachment(state.conversation_id, attachment)
    state.pending_attachments.append(attachment)
    console.print(
        f"[chat.meta]Attached {attachment.filename} ({attachment.content_type}) "
        "to the next message.[/chat.meta]"
    )
    return True


def cmd_mode(state: ChatState, argument: str | None) -> bool:
    _print_mode(state)
    return True


COMMAND_HANDLERS: dict[str, Any] = {
    "exit": cmd_exit,
    "help": cmd_help,
    "history": cmd_history,
    "use": cmd_use,
    "new": cmd_new,
    "single": cmd_single,
    "attach": cmd_attach,
    "mode": cmd_mode,
}


# ---------------------------------------------------------------------------
# Main session loop
# ---------------------------------------------------------------------------


async def run_chat_turn(state: ChatState, question: str) -> None:
    """Run one question through the council and persist both sides of the exchange."""
    state.conversation = state.store.get_conversation(state.conversation_id)
    if state.conversation is None:
        state.conversation = state.store.create_conversation(state.conversation_id)

    is_first_message = len(state.conversation.get("messages", [])) == 0
    request = build_request(state, question)
    state.pending_attachments.clear()

    title_task = None
    if is_first_message:
        title_task = asyncio.create_task(generate_conversation_title(question))

    print_user_question_panel(question)

    outcome = await run_council_with_progress(request)

    if outcome.stage1:
        print_stage1(outcome.stage1)
    if outcome.stage2:
        print_stage2(
            outcome.stage2,
            outcome.metadata.label_to_model,
            outcome.metadata.aggregate_rankings,
        )
    if outcome.stage3 is not None and not outcome.failed:
        print_stage3(outcome.stage3)

    # Saved only now so preprocessing reads prior turns alone
    state.store.add_user_message(
        state.conversation_id, question, list(request.attachments) or None
    )
    state.store.add_assistant_message(
        state.conversation_id, outcome.stage1, outcome.stage2, outcome.stage3
    )

    if title_task:
        state.title = await title_task
        state.store.update_conversation_title(state.conversation_id, state.title)


async def run_chat_session(
    start_new: bool,
    single_model: str | None = None,
    store: JsonConversationStore | None = None,
) -> None:
    """Run interactive chat session with stored conversation history."""
    state = ChatState(store=store or JsonConversationStore(), single_model=single_model)
    conversations = state.store.list_conversations()
    resumed = False

    if not start_new and conversations:
        state.conversation_id = conversations[0]["id"]
        state.conversation = state.store.get_conversation(state.conversation_id)
        resumed = state.conversation is not None

    if state.conversation is None:
        _start_conversation(state)
        resumed = False

    state.title = state.conversation.get("title", "New Conversation")
    _print_banner(state, resumed=resumed)

    while True:
        try:
            user_input = console.input(build_chat_prompt()).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[chat.meta]Exiting chat.[/chat.meta]")
            break

        if not user_input:
            continue

        if user_input.startswith(("/", ":")):
            command, argument = parse_chat_command(user_input)
            if not command:
                print_chat_suggestions("")
                continue
            if command not in CHAT_COMMANDS:
                print_chat_suggestions(command)
                continue
            handler = COMMAND_HANDLERS.get(command)
            if handler is not None:
                if not handler(state, argument):
                    break
                continue
            console.print("[chat.error]Unknown command. Type /help for options.[/chat.error]")
            continue

        await run_chat_turn(state, user_input)
