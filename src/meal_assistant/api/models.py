"""Pydantic models for HTTP request payloads."""

from typing import Literal

from pydantic import BaseModel, Field

from meal_assistant.domain.intents import AgentRequest, HistoryTurn


class TurnContext(BaseModel):
    """Conversation context sent with a message."""

    session_id: str | None = None
    active_meal_id: int | None = None


class HistoryMessage(BaseModel):
    """Previous message shown to the user."""

    role: Literal["user", "assistant"]
    text: str


class LogMealRequest(BaseModel):
    """Body of a conversational log request."""

    text: str = ""
    context: TurnContext = Field(default_factory=TurnContext)
    history: list[HistoryMessage] = Field(default_factory=list)

    def to_agent_request(self, session_id: str) -> AgentRequest:
        """Convert the payload into an agent request."""
        return AgentRequest(
            text=self.text.strip(),
            session_id=session_id,
            active_meal_id=self.context.active_meal_id,
            history=[
                HistoryTurn(role=message.role, text=message.text)
                for message in self.history
            ],
        )


class EntryPatchRequest(BaseModel):
    """Manual correction of a stored entry."""

    item: str | None = None
    amount_grams: float | None = Field(default=None, ge=0)
    kcal: float | None = Field(default=None, ge=0)
    protein_g: float | None = Field(default=None, ge=0)
    carbs_g: float | None = Field(default=None, ge=0)
    fat_g: float | None = Field(default=None, ge=0)
    assumptions: list[str] | None = None

    def changes(self) -> dict[str, object]:
        """Return only the fields the client sent."""
        changes = self.model_dump(exclude_unset=True)
        item = changes.pop("item", None)
        if isinstance(item, str) and item.strip():
            changes["item"] = item.strip()
        if changes.get("assumptions", []) is None:
            changes.pop("assumptions")
        return changes
