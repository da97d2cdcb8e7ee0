"""
Message construction for provider requests, including attachments.
"""

import logging
from collections.abc import Sequence

from ..models import Attachment, ContentPart, FilePart, ImagePart, ModelMessage, TextPart

logger = logging.getLogger(__name__)


def build_message_content(
    text: str, attachments: Sequence[Attachment] | None = None
) -> str | tuple[ContentPart, ...]:
    """
    Build message content with attachments in OpenRouter format.

    Images become image parts and PDFs become file parts. Attachments whose
    URL is not http(s) or a data URI (local paths, file:// URLs, empty) are
    dropped with a warning, as are unsupported content types.

    Returns:
        Plain text when there is nothing to attach, otherwise a tuple of parts
    """
    if not attachments:
        return text

    parts: list[ContentPart] = []
    if text:
        parts.append(TextPart(text))

    for attachment in attachments:
        if not attachment.is_remote:
            logger.warning(
                "Skipping attachment %r with non-remote URL %r",
                attachment.filename,
                attachment.url[:100],
            )
            continue

        if attachment.content_type.startswith("image/"):
            parts.append(ImagePart(attachment.url))
        elif attachment.content_type == "application/pdf":
            parts.append(FilePart(attachment.url, attachment.content_type))
        else:
            logger.warning(
                "Skipping attachment %r with unsupported type %s",
                attachment.filename,
                attachment.content_type,
            )

    if not parts or (len(parts) == 1 and isinstance(parts[0], TextPart)):
        return text
    return tuple(parts)


def build_user_messages(
    text: str, attachments: Sequence[Attachment] | None = None
) -> list[ModelMessage]:
    """Wrap a prompt (and optional attachments) as a single-message conversation."""
    return [ModelMessage.user(build_message_content(text, attachments))]
