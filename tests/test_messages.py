"""
Tests for attachment-aware message construction.
"""

import logging

from deliberation.engine.messages import build_message_content, build_user_messages
from deliberation.models import Attachment, FilePart, ImagePart, TextPart

IMAGE = Attachment("https://cdn.example.com/chart.png", "chart.png", "image/png")
PDF = Attachment("https://cdn.example.com/report.pdf", "report.pdf", "application/pdf")


def test_no_attachments_returns_text():
    assert build_message_content("hello") == "hello"
    assert build_message_content("hello", []) == "hello"


def test_image_and_pdf_parts_in_order():
    content = build_message_content("Compare these", [IMAGE, PDF])

    assert content == (
        TextPart("Compare these"),
        ImagePart(IMAGE.url),
        FilePart(PDF.url, "application/pdf"),
    )


def test_empty_text_omits_text_part():
    assert build_message_content("", [IMAGE]) == (ImagePart(IMAGE.url),)


def test_local_path_dropped_with_warning(caplog):
    local = Attachment("/home/me/chart.png", "chart.png", "image/png")

    with caplog.at_level(logging.WARNING):
        content = build_message_content("What is this?", [local])

    assert content == "What is this?"
    assert "non-remote" in caplog.text


def test_unsupported_type_dropped():
    sheet = Attachment("https://cdn.example.com/data.csv", "data.csv", "text/csv")
    assert build_message_content("Summarize", [sheet, IMAGE]) == (
        TextPart("Summarize"),
        ImagePart(IMAGE.url),
    )


def test_data_uri_is_kept():
    inline = Attachment("data:image/png;base64,iVBORw0KGgo=", "inline.png", "image/png")
    assert build_message_content("Look", [inline])[1] == ImagePart(inline.url)


def test_build_user_messages_wraps_single_user_message():
    messages = build_user_messages("hi", [IMAGE])

    assert len(messages) == 1
    payload = messages[0].to_payload()
    assert payload["role"] == "user"
    assert payload["content"][1] == {"type": "image_url", "image_url": {"url": IMAGE.url}}
