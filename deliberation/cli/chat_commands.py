"""
Helpers for CLI chat mode.
"""

from deliberation.models import Attachment

CHAT_COMMANDS = {
    "help": "Show this help",
    "history": "List saved conversations",
    "use": "Switch to a conversation by ID prefix",
    "new": "Start a new conversation",
    "single": "Answer with one model (/single <model>) or the council (/single off)",
    "attach": "Attach an http(s) or data: URL to the conversation",
    "mode": "Show current mode",
    "exit": "Exit chat",
}

CHAT_COMMAND_ALIASES = {
    "q": "exit",
    "quit": "exit",
}

_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}


def parse_chat_command(text: str) -> tuple[str, str | None]:
    """Parse chat command into (command, argument)."""
    stripped = text.strip()
    if not stripped.startswith(("/", ":")):
        return "", None

    body = stripped[1:].strip()
    if not body:
        return "", None

    parts = body.split(maxsplit=1)
    command = parts[0].lower()
    argument = parts[1].strip() if len(parts) > 1 else None
    if command in CHAT_COMMAND_ALIASES:
        command = CHAT_COMMAND_ALIASES[command]
    return command, argument


def list_chat_commands() -> list[str]:
    """Return all supported chat commands."""
    return list(CHAT_COMMANDS.keys())


def suggest_chat_commands(prefix: str) -> list[str]:
    """Suggest commands matching a prefix."""
    prefix = prefix.lower().strip()
    if not prefix:
        return list_chat_commands()
    return [command for command in CHAT_COMMANDS if command.startswith(prefix)]


def format_chat_mode_line(single_model: str | None, preprocess_model: str | None = None) -> str:
    """Format the current chat mode line for display."""
    if single_model:
        mode_str = f"Single model ({single_model})"
    else:
        mode_str = "Council (ranking)"

    if preprocess_model and not single_model:
        mode_str += r" \[preprocess]"

    return f"[chat.meta]Mode:[/chat.meta] [chat.accent]{mode_str}[/chat.accent]"


def build_chat_prompt() -> str:
    """Build the chat prompt string."""
    return "[chat.prompt]council>[/chat.prompt] "


def guess_content_type(url: str) -> str:
    """Guess an attachment's content type from its URL."""
    if url.startswith("data:"):
        return url[5:].split(";", 1)[0].split(",", 1)[0] or "application/octet-stream"
    path = url.split("?", 1)[0].lower()
    for suffix, content_type in _CONTENT_TYPES.items():
        if path.endswith(suffix):
            return content_type
    return "application/octet-stream"


def attachment_from_url(url: str) -> Attachment:
    """Build an Attachment reference for a URL given on the command line."""
    if url.startswith("data:"):
        filename = "inline-data"
    else:
        filename = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1] or url
    return Attachment(url=url, filename=filename, content_type=guess_content_type(url))
