"""Session domain models for live conversations."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class SessionStatus(Enum):
	"""Connection state of a realtime session."""

	IDLE = "idle"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	RECORDING = "recording"
	PROCESSING = "processing"
	SPEAKING = "speaking"
	ERROR = "error"


class MessageRole(Enum):
	USER = "user"
	ASSISTANT = "assistant"


@dataclass
class ConversationMessage:
	"""A finished user or assistant utterance."""

	role: MessageRole
	content: str
	created_at: float = field(default_factory=lambda: time.time())

	def to_dict(self) -> dict:
		return {"role": self.role.value, "content": self.content, "created_at": self.created_at}


@dataclass
class ConversationState:
	"""In-memory log of one live conversation."""

	conversation_id: str
	provider: str
	messages: List[ConversationMessage] = field(default_factory=list)
	closed: bool = False
	started_at: float = field(default_factory=lambda: time.time())
