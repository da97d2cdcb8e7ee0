"""
Tests for chat REPL state handling and persistence.
"""

from unittest.mock import AsyncMock, patch

import pytest

from deliberation.cli.chat_session import (
    ChatState,
    build_request,
    cmd_attach,
    cmd_exit,
    cmd_new,
    cmd_single,
    cmd_use,
    resolve_conversation_id,
    run_chat_turn,
)
from deliberation.models import Success
from tests.conftest import SAMPLE_MODELS, SAMPLE_SYNTHESIS, make_fake_streaming, patch_streaming


@pytest.fixture
def state(store):
    chat_state = ChatState(store=store)
    cmd_new(chat_state, None)
    return chat_state


def test_new_conversation_is_persisted(state, store):
    assert store.get_conversation(state.conversation_id) is not None
    assert state.title == "New Conversation"


def test_resolve_conversation_id_by_prefix():
    conversations = [{"id": "abc123"}, {"id": "abd456"}, {"id": "xyz789"}]
    assert resolve_conversation_id("abc", conversations) == "abc123"
    assert resolve_conversation_id("ab", conversations) is None
    assert resolve_conversation_id("nope", conversations) is None


def test_use_switches_conversation(state, store):
    store.create_conversation("feedface")
    store.update_conversation_title("feedface", "Older Chat")

    assert cmd_use(state, "feed") is True
    assert state.conversation_id == "feedface"
    assert state.title == "Older Chat"


def test_single_toggles_mode(state):
    cmd_single(state, "openai/gpt-5.2")
    assert state.single_model == "openai/gpt-5.2"
    assert build_request(state, "q").single_model == "openai/gpt-5.2"

    cmd_single(state, "off")
    assert state.single_model is None


def test_attach_queues_for_next_message(state, store):
    cmd_attach(state, "https://cdn.example.com/chart.png")

    assert [a.filename for a in state.pending_attachments] == ["chart.png"]
    assert store.get_conversation_attachments(state.conversation_id)[0].content_type == "image/png"
    assert build_request(state, "q").attachments == tuple(state.pending_attachments)


def test_attach_rejects_local_paths(state):
    cmd_attach(state, "/home/me/chart.png")
    assert state.pending_attachments == []


def test_exit_stops_loop(state):
    assert cmd_exit(state, None) is False


def test_request_carries_store_for_preprocessing(state, store):
    state.preprocess_model = "google/gemini-2.5-flash"
    request = build_request(state, "follow-up")

    assert request.store is store
    assert request.conversation_id == state.conversation_id
    assert request.preprocessing_enabled


@pytest.mark.asyncio
async def test_turn_saves_exchange_and_title(state, store, monkeypatch):
    monkeypatch.setattr("deliberation.cli.chat_session.COUNCIL_MODELS", SAMPLE_MODELS)
    cmd_attach(state, "https://cdn.example.com/chart.png")
    title_mock = AsyncMock(return_value=Success(text="Beginner Languages"))

    with patch_streaming(make_fake_streaming()):
        with patch("deliberation.engine.stages.query_model", title_mock):
            await run_chat_turn(state, "Which language should a beginner learn?")

    conversation = store.get_conversation(state.conversation_id)
    user, assistant = conversation["messages"]
    assert user["content"] == "Which language should a beginner learn?"
    assert user["attachments"][0]["filename"] == "chart.png"
    assert len(assistant["stage1"]) == 3
    assert assistant["stage3"]["response"] == SAMPLE_SYNTHESIS
    assert conversation["title"] == "Beginner Languages"
    assert state.pending_attachments == []


@pytest.mark.asyncio
async def test_second_turn_keeps_title(state, store, monkeypatch):
    monkeypatch.setattr("deliberation.cli.chat_session.COUNCIL_MODELS", SAMPLE_MODELS)
    store.add_user_message(state.conversation_id, "earlier")
    store.update_conversation_title(state.conversation_id, "Existing Title")
    title_mock = AsyncMock()

    with patch_streaming(make_fake_streaming()):
        with patch("deliberation.engine.stages.query_model", title_mock):
            await run_chat_turn(state, "Which language should a beginner learn?")

    title_mock.assert_not_called()
    assert store.get_conversation(state.conversation_id)["title"] == "Existing Title"


@pytest.mark.asyncio
async def test_preprocessing_history_holds_prior_turns_only(state, store, monkeypatch):
    monkeypatch.setattr("deliberation.cli.chat_session.COUNCIL_MODELS", SAMPLE_MODELS)
    store.add_user_message(state.conversation_id, "What is Rust?")
    store.add_assistant_message(state.conversation_id, [], [], None)
    store.update_conversation_title(state.conversation_id, "Rust")
    state.preprocess_model = "google/gemini-2.5-flash"
    calls = []

    with patch_streaming(make_fake_streaming(calls=calls)):
        await run_chat_turn(state, "How does its borrow checker work?")

    prompt = next(
        messages[0].to_payload()["content"]
        for model, messages in calls
        if model == "google/gemini-2.5-flash"
    )
    history = prompt.split("CONVERSATION HISTORY:")[1].split("CURRENT USER MESSAGE:")[0]
    assert "What is Rust?" in history
    assert "borrow checker" not in history

    user_messages = [
        m["content"] for m in store.get_conversation(state.conversation_id)["messages"] if m["role"] == "user"
    ]
    assert user_messages == ["What is Rust?", "How does its borrow checker work?"]
