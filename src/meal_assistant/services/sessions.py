"""Conversation state and turn audit trail."""

import logging
from dataclasses import dataclass
from typing import Protocol

from meal_assistant.domain.sessions import ConversationSession, MealAction

_logger = logging.getLogger(__name__)


class ConversationRepository(Protocol):
    """Persistence interface for conversation sessions and actions."""

    def get_session(self, session_id: str) -> ConversationSession | None:
        """Return a session by its external id."""

    def upsert_session(
        self, session_id: str, active_meal_id: int | None, last_intent: str
    ) -> None:
        """Create or update the session row."""

    def create_action(self, action: MealAction) -> None:
        """Append a meal action row."""


@dataclass
class SessionService:
    """Read and write per-conversation state."""

    repository: ConversationRepository

    def active_meal_id(self, session_id: str) -> int | None:
        """Return the stored active meal for a conversation."""
        session = self.repository.get_session(session_id)
        if session is None:
            return None
        return session.active_meal_id

    def remember(
        self, session_id: str, active_meal_id: int | None, last_intent: str
    ) -> None:
        """Store the active meal and last intent of a conversation."""
        self.repository.upsert_session(session_id, active_meal_id, last_intent)

    def log_action(  # noqa: PLR0913
        self,
        session_id: str,
        meal_id: int | None,
        action_type: str,
        status: str,
        raw_text: str,
        resolved_intent: str,
        reason: str | None = None,
        entry_ids: list[int] | None = None,
    ) -> None:
        """Append an audit record for a turn."""
        self.repository.create_action(
            MealAction(
                session_id=session_id,
                meal_id=meal_id,
                action_type=action_type,
                status=status,
                raw_text=raw_text,
                resolved_intent=resolved_intent,
                reason=reason,
                entry_ids=tuple(entry_ids or ()),
            )
        )
        _logger.info(
            "Turn recorded: session=%s action=%s status=%s",
            session_id,
            action_type,
            status,
        )
