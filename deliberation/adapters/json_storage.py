"""JSON-based storage for conversations.

Each conversation lives in its own ``<id>.json`` file under the data
directory. The engine only reads through the ``ConversationStore``
protocol; the CLI owns writes.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ..models import Attachment, Stage1Result, Stage2Result, Stage3Result
from ..settings import DATA_DIR

logger = logging.getLogger(__name__)


@runtime_checkable
class ConversationStore(Protocol):
    """Read capability the preprocessing step needs from conversation storage."""

    def get_conversation(self, conversation_id: str) -> dict[str, Any] | None: ...

    def get_conversation_attachments(self, conversation_id: str) -> list[Attachment]: ...


class JsonConversationStore:
    """File-per-conversation store implementing ``ConversationStore``."""

    def __init__(self, data_dir: str | Path = DATA_DIR):
        self.data_dir = Path(data_dir)

    def _ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        return self.data_dir / f"{conversation_id}.json"

    def create_conversation(self, conversation_id: str) -> dict[str, Any]:
        """
        Create a new conversation.

        Args:
            conversation_id: Unique identifier for the conversation

        Returns:
            New conversation dict
        """
        self._ensure_data_dir()

        conversation = {
            "id": conversation_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "title": "New Conversation",
            "messages": [],
            "attachments": [],
        }
        self.save_conversation(conversation)
        return conversation

    def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        """
        Load a conversation from storage.

        Returns:
            Conversation dict or None if not found
        """
        path = self._path(conversation_id)
        if not path.exists():
            return None

        with open(path) as f:
            return json.load(f)

    def save_conversation(self, conversation: dict[str, Any]) -> None:
        self._ensure_data_dir()
        with open(self._path(conversation["id"]), "w") as f:
            json.dump(conversation, f, indent=2)

    def list_conversations(self) -> list[dict[str, Any]]:
        """
        List all conversations (metadata only), newest first.
        """
        if not self.data_dir.exists():
            return []

        conversations = []
        for path in self.data_dir.glob("*.json"):
            try:
                with open(path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable conversation file %s: %s", path, e)
                continue
            conversations.append(
                {
                    "id": data["id"],
                    "created_at": data.get("created_at", ""),
                    "title": data.get("title", "New Conversation"),
                    "message_count": len(data.get("messages", [])),
                }
            )

        conversations.sort(key=lambda c: c["created_at"], reverse=True)
        return conversations

    def _require(self, conversation_id: str) -> dict[str, Any]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ValueError(f"Conversation {conversation_id} not found")
        return conversation

    def add_user_message(
        self, conversation_id: str, content: str, attachments: list[Attachment] | None = None
    ) -> None:
        conversation = self._require(conversation_id)
        message: dict[str, Any] = {"role": "user", "content": content}
        if attachments:
            message["attachments"] = [a.to_dict() for a in attachments]
        conversation["messages"].append(message)
        self.save_conversation(conversation)

    def add_assistant_message(
        self,
        conversation_id: str,
        stage1: list[Stage1Result] | tuple[Stage1Result, ...],
        stage2: list[Stage2Result] | tuple[Stage2Result, ...],
        stage3: Stage3Result | None,
    ) -> None:
        conversation = self._require(conversation_id)
        conversation["messages"].append(
            {
                "role": "assistant",
                "stage1": [r.to_dict() for r in stage1],
                "stage2": [r.to_dict() for r in stage2],
                "stage3": stage3.to_dict() if stage3 else None,
            }
        )
        self.save_conversation(conversation)

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        conversation = self._require(conversation_id)
        conversation["title"] = title
        self.save_conversation(conversation)

    def add_conversation_attachment(self, conversation_id: str, attachment: Attachment) -> None:
        conversation = self._require(conversation_id)
        conversation.setdefault("attachments", []).append(attachment.to_dict())
        self.save_conversation(conversation)

    def get_conversation_attachments(self, conversation_id: str) -> list[Attachment]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return []
        return [Attachment.from_dict(a) for a in conversation.get("attachments", [])]

    def delete_conversation(self, conversation_id: str) -> bool:
        path = self._path(conversation_id)
        if not path.exists():
            return False
        path.unlink()
        return True
