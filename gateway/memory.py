"""
Conversation Memory Module

Conversation history types, the history windowing policy, and the
session registry used for monitoring chat activity.

Design Rationale:
- History is supplied by the client on every request; the server never
  stores message text, only per-session counters
- HistoryWindow makes truncation an explicit, configurable policy
  (unbounded unless limits are set)
- SessionStore is thread-safe for concurrent request handlers and hands
  out copies, so callers cannot mutate its state

Usage:
    sessions = SessionStore()
    sessions.update_session("abc", 3)
    info = sessions.get_session("abc")
    removed = sessions.cleanup_old_sessions(timedelta(hours=24))
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationMessage:
    """
    Represents a single message in the conversation.

    Attributes:
        role: MessageRole.USER or MessageRole.ASSISTANT
        content: The message text
        timestamp: When the message was created
    """
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utcnow)


ConversationHistory = List[ConversationMessage]


class HistoryWindow:
    """
    Truncation policy applied to conversation history before prompting.

    Keeps the most recent messages that fit both limits; a limit of 0
    disables it. With both limits at 0 the history passes through unchanged.

    Example:
        window = HistoryWindow(max_messages=10, max_tokens=2000)
        recent = window.apply(history)
    """

    def __init__(self, max_messages: int = 0, max_tokens: int = 0):
        """
        Initialize the window.

        Args:
            max_messages: Maximum number of messages to keep (0 = unbounded)
            max_tokens: Approximate token budget (0 = unbounded)
        """
        if max_messages < 0 or max_tokens < 0:
            raise ValueError("history limits must be non-negative")
        self.max_messages = max_messages
        self.max_tokens = max_tokens

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """
        Estimate token count from text.

        Uses the approximation: 1 token ~ 4 characters for English.
        """
        return len(text) // 4

    @property
    def unbounded(self) -> bool:
        return self.max_messages == 0 and self.max_tokens == 0

    def apply(self, history: ConversationHistory) -> ConversationHistory:
        """
        Return the most recent messages within the limits, oldest first.

        Args:
            history: Full conversation history

        Returns:
            A new list; the input is not modified
        """
        if self.unbounded:
            return list(history)

        kept: ConversationHistory = []
        total_tokens = 0
        for message in reversed(history):
            if self.max_messages and len(kept) >= self.max_messages:
                break
            tokens = self.estimate_tokens(message.content)
            if self.max_tokens and total_tokens + tokens > self.max_tokens:
                break
            kept.append(message)
            total_tokens += tokens

        if len(kept) < len(history):
            logger.debug(f"History window dropped {len(history) - len(kept)} old messages")

        kept.reverse()
        return kept


@dataclass
class SessionInfo:
    """
    Monitoring record of one client session.

    Attributes:
        session_id: Client-supplied opaque identifier
        message_count: Message count reported by the last request
        created_at: First time the session was seen
        last_activity: Last time the session was updated
    """
    session_id: str
    message_count: int
    created_at: datetime
    last_activity: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape used by the API."""
        return {
            "sessionId": self.session_id,
            "messageCount": self.message_count,
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
        }


class SessionStore:
    """
    Thread-safe in-memory registry of session metadata.

    Session ids are never validated: any string is a distinct key.
    Every read returns copies of the stored records.
    One mutex guards every operation, so reads are serialized too.

    Example:
        store = SessionStore()
        store.update_session("user_123", 1)
        store.get_session("user_123").message_count  # 1
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the session store.

        Args:
            clock: Returns the current time (defaults to UTC now)
        """
        self._sessions: Dict[str, SessionInfo] = {}
        self._lock = threading.Lock()
        self._clock = clock or utcnow

        logger.info("SessionStore initialized")

    def update_session(self, session_id: str, message_count: int) -> None:
        """
        Create or update a session.

        Sets last_activity to now; created_at is only set on creation.
        """
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                self._sessions[session_id] = SessionInfo(
                    session_id=session_id,
                    message_count=message_count,
                    created_at=now,
                    last_activity=now,
                )
                logger.debug(f"Created session {session_id}")
            else:
                session.message_count = message_count
                session.last_activity = now

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        """Return a copy of the session, or None if it does not exist."""
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session is not None else None

    def get_all_sessions(self) -> List[SessionInfo]:
        """Snapshot of every session, in no particular order."""
        with self._lock:
            return [replace(s) for s in self._sessions.values()]

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                logger.debug(f"Deleted session {session_id}")
                return True
            return False

    def cleanup_old_sessions(self, max_age: timedelta) -> int:
        """
        Remove sessions whose last activity is strictly before now - max_age.

        Returns:
            Number of sessions removed
        """
        cutoff = self._clock() - max_age

        with self._lock:
            to_remove = [
                sid for sid, s in self._sessions.items()
                if s.last_activity < cutoff
            ]
            for sid in to_remove:
                del self._sessions[sid]

        if to_remove:
            logger.info(f"Cleaned up {len(to_remove)} old sessions")

        return len(to_remove)

    def session_count(self) -> int:
        """Return number of tracked sessions."""
        with self._lock:
            return len(self._sessions)
