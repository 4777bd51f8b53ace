"""Conversation state for the chat assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

MAX_MESSAGES_IN_CONTEXT = 30
UNKNOWN_ERROR = "Unknown error."

Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """One entry of the visible conversation."""

    role: Role
    content: str
    is_error: bool = False

    def to_api(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatHistory:
    """Ordered chat transcript plus the windowed view sent to the model."""

    max_context_messages: int = MAX_MESSAGES_IN_CONTEXT
    _messages: List[ChatMessage] = field(default_factory=list, init=False, repr=False)

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def add_user_message(self, content: Optional[str]) -> ChatMessage:
        message = ChatMessage(role="user", content=(content or "").strip())
        self._messages.append(message)
        return message

    def add_assistant_message(self, content: Optional[str]) -> ChatMessage:
        message = ChatMessage(role="assistant", content=(content or "").strip())
        self._messages.append(message)
        return message

    def add_error_message(self, content: Optional[str]) -> ChatMessage:
        message = ChatMessage(role="assistant", content=content or UNKNOWN_ERROR, is_error=True)
        self._messages.append(message)
        return message

    def api_messages(self, system_content: Optional[str] = None) -> List[Dict[str, str]]:
        """Return messages in chat-completions format, newest window only.

        Error replies stay visible in the transcript but are never sent back
        to the model.
        """

        payload: List[Dict[str, str]] = []
        if system_content:
            payload.append({"role": "system", "content": system_content})
        history = [
            message.to_api()
            for message in self._messages
            if message.role == "user" or (message.role == "assistant" and not message.is_error)
        ]
        if self.max_context_messages > 0:
            history = history[-self.max_context_messages:]
        payload.extend(history)
        return payload

    def clear(self) -> None:
        self._messages = []

    def is_empty(self) -> bool:
        return not self._messages

    def __len__(self) -> int:
        return len(self._messages)


__all__ = ["ChatHistory", "ChatMessage", "MAX_MESSAGES_IN_CONTEXT"]
