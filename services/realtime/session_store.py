"""Simple in-memory store for live conversation logs."""

from __future__ import annotations

from typing import Dict, Iterable
from uuid import uuid4

from models.session_models import ConversationMessage, ConversationState, MessageRole


class ConversationStore:
	"""Manage conversation logs for live sessions; nothing is persisted."""

	def __init__(self) -> None:
		self._conversations: Dict[str, ConversationState] = {}

	def create(self, provider: str) -> ConversationState:
		"""Start a new conversation for the given provider id."""
		conversation_id = uuid4().hex
		state = ConversationState(conversation_id=conversation_id, provider=provider)
		self._conversations[conversation_id] = state
		return state

	def get(self, conversation_id: str) -> ConversationState:
		"""Return a conversation or raise KeyError if missing."""
		state = self._conversations.get(conversation_id)
		if state is None:
			raise KeyError(f"Conversation {conversation_id} not found")
		return state

	def add_message(self, conversation_id: str, role: MessageRole, content: str) -> ConversationMessage:
		"""Append a finished utterance; blank text is rejected."""
		state = self.get(conversation_id)
		if state.closed:
			raise RuntimeError("Conversation is closed; start a new conversation.")
		text = content.strip()
		if not text:
			raise ValueError("Message text is required.")
		message = ConversationMessage(role=role, content=text)
		state.messages.append(message)
		return message

	def close(self, conversation_id: str) -> ConversationState:
		"""Mark a conversation as closed while keeping its messages."""
		state = self.get(conversation_id)
		state.closed = True
		return state

	def discard(self, conversation_id: str) -> None:
		self._conversations.pop(conversation_id, None)

	def messages_as_text(self, conversation_id: str, limit: int = 15) -> str:
		"""Return the most recent messages as a text transcript."""
		state = self.get(conversation_id)
		slice_: Iterable[ConversationMessage] = state.messages[-limit:] if limit else state.messages
		lines = [f"{msg.role.value.upper()}: {msg.content}" for msg in slice_]
		return "\n".join(lines)
