"""Supabase-backed conversation repository."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from meal_assistant.domain.sessions import ConversationSession, MealAction
from meal_assistant.services.sessions import ConversationRepository


@dataclass
class SupabaseConversationRepository(ConversationRepository):
    """Supabase implementation for conversation sessions and meal actions."""

    client: Client

    def get_session(self, session_id: str) -> ConversationSession | None:
        """Return a session by its external id, if present."""
        response = (
            self.client.table("conversation_sessions")
            .select("session_id, active_meal_id, last_intent, metadata_json")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        active_meal_id = row.get("active_meal_id")
        return ConversationSession(
            session_id=row["session_id"],
            active_meal_id=int(active_meal_id) if active_meal_id is not None else None,
            last_intent=row.get("last_intent"),
            metadata=row.get("metadata_json") or {},
        )

    def upsert_session(
        self, session_id: str, active_meal_id: int | None, last_intent: str
    ) -> None:
        """Create or update the session row keyed by session id."""
        self.client.table("conversation_sessions").upsert(
            {
                "session_id": session_id,
                "active_meal_id": active_meal_id,
                "last_intent": last_intent,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="session_id",
        ).execute()

    def create_action(self, action: MealAction) -> None:
        """Append a meal action row."""
        self.client.table("meal_actions").insert(
            {
                "session_id": action.session_id,
                "meal_id": action.meal_id,
                "action_type": action.action_type,
                "status": action.status,
                "raw_text": action.raw_text,
                "resolved_intent": action.resolved_intent,
                "reason": action.reason,
                "entry_ids_json": list(action.entry_ids),
            }
        ).execute()
