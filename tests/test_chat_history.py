"""Tests for the chat transcript and API window."""

from __future__ import annotations

from gmai.chat import ChatHistory


def test_api_window_keeps_last_thirty_messages():
    history = ChatHistory()
    for idx in range(20):
        history.add_user_message(f"question {idx}")
        history.add_assistant_message(f"answer {idx}")

    payload = history.api_messages()

    assert len(history) == 40
    assert len(payload) == 30
    assert payload[0] == {"role": "user", "content": "question 5"}
    assert payload[-1] == {"role": "assistant", "content": "answer 19"}


def test_error_replies_are_not_sent():
    history = ChatHistory()
    history.add_user_message("  hi  ")
    history.add_error_message("Message limit reached.")
    history.add_error_message(None)

    assert history.api_messages() == [{"role": "user", "content": "hi"}]
    assert history.messages[-1].content == "Unknown error."
    assert len(history.messages) == 3


def test_system_content_is_prepended():
    history = ChatHistory(max_context_messages=1)
    history.add_user_message("one")
    history.add_user_message("two")

    payload = history.api_messages(system_content="rules")

    assert payload == [
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "two"},
    ]


def test_clear_empties_transcript():
    history = ChatHistory()
    history.add_user_message("hi")

    history.clear()

    assert history.is_empty()
    assert history.api_messages() == []
