"""Domain models for conversation state."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ConversationSession:
    """Per-conversation state carried between turns."""

    session_id: str
    active_meal_id: int | None
    last_intent: str | None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class MealAction:
    """Append-only record of a completed or clarifying turn."""

    session_id: str
    meal_id: int | None
    action_type: str
    status: str
    raw_text: str
    resolved_intent: str
    reason: str | None = None
    entry_ids: tuple[int, ...] = ()
