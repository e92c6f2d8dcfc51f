"""Models for conversational intents."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

from meal_assistant.domain.meals import MealItemMention

AgentAction = Literal["log", "patch", "replace", "delete", "list", "clarify"]
DeleteScope = Literal["one", "all", "none"]

ITEM_ACTIONS = frozenset({"log", "patch", "replace"})


@dataclass(frozen=True)
class HistoryTurn:
    """Previous message in the conversation."""

    role: str
    text: str


@dataclass(frozen=True)
class AgentRequest:
    """Input for a single conversational turn."""

    text: str
    session_id: str
    active_meal_id: int | None = None
    history: list[HistoryTurn] = field(default_factory=list)


@dataclass(frozen=True)
class AgentIntent:
    """Structured action derived from a user message."""

    action: AgentAction
    target_meal_id: int | None
    items: list[MealItemMention]
    delete_scope: DeleteScope
    confidence: float
    requires_input: str | None
    reason: str


class IntentItemPayload(BaseModel):
    """Single item in a reasoning-backend intent payload."""

    name: str = Field(min_length=1)
    display_name: str | None = None
    quantity: float | None = Field(default=None, ge=0)
    unit: str | None = None
    size: str | None = None
    amount_grams: float | None = Field(default=None, ge=0)
    kcal: float | None = Field(default=None, ge=0)
    protein_g: float | None = Field(default=None, ge=0)
    carbs_g: float | None = Field(default=None, ge=0)
    fat_g: float | None = Field(default=None, ge=0)


class IntentPayload(BaseModel):
    """Structured output for intent classification."""

    action: AgentAction
    target_meal_id: int | None
    delete_scope: DeleteScope
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    requires_input: str | None
    items: list[IntentItemPayload]

    def to_intent(self) -> AgentIntent:
        """Convert the payload into a domain intent."""
        return AgentIntent(
            action=self.action,
            target_meal_id=self.target_meal_id,
            items=[
                MealItemMention(
                    name=item.name,
                    display_name=item.display_name,
                    quantity=item.quantity,
                    unit=item.unit,
                    size=item.size,
                    amount_grams=item.amount_grams,
                    kcal=item.kcal,
                    protein_g=item.protein_g,
                    carbs_g=item.carbs_g,
                    fat_g=item.fat_g,
                )
                for item in self.items
            ],
            delete_scope=self.delete_scope,
            confidence=self.confidence,
            requires_input=self.requires_input,
            reason=self.reason,
        )
