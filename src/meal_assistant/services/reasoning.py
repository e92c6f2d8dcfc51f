"""Reasoning-backend contract and structured output schemas."""

import logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel

from meal_assistant.domain.meals import MealItemMention
from meal_assistant.domain.nutrition import RankedCandidate

_logger = logging.getLogger(__name__)

_NULLABLE_NUMBER = {"anyOf": [{"type": "number", "minimum": 0}, {"type": "null"}]}
_NULLABLE_STRING = {"anyOf": [{"type": "string"}, {"type": "null"}]}

INTENT_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": ["log", "patch", "replace", "delete", "list", "clarify"],
        },
        "target_meal_id": {"anyOf": [{"type": "integer"}, {"type": "null"}]},
        "delete_scope": {"type": "string", "enum": ["one", "all", "none"]},
        "confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
        "reason": {"type": "string"},
        "requires_input": _NULLABLE_STRING,
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "display_name": _NULLABLE_STRING,
                    "quantity": _NULLABLE_NUMBER,
                    "unit": _NULLABLE_STRING,
                    "size": _NULLABLE_STRING,
                    "amount_grams": _NULLABLE_NUMBER,
                    "kcal": _NULLABLE_NUMBER,
                    "protein_g": _NULLABLE_NUMBER,
                    "carbs_g": _NULLABLE_NUMBER,
                    "fat_g": _NULLABLE_NUMBER,
                },
                "required": [
                    "name",
                    "display_name",
                    "quantity",
                    "unit",
                    "size",
                    "amount_grams",
                    "kcal",
                    "protein_g",
                    "carbs_g",
                    "fat_g",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": [
        "action",
        "target_meal_id",
        "delete_scope",
        "confidence",
        "reason",
        "requires_input",
        "items",
    ],
    "additionalProperties": False,
}

INTENT_INSTRUCTIONS = (
    "You are a conversational calorie tracker planner. "
    "Extract the user intent and the food items they mention. "
    "Prefer best-effort logging and ask a follow-up only when no "
    "defensible action is possible."
)

NOMINATION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "candidate_id": _NULLABLE_STRING,
        "rationale": {"type": "string"},
    },
    "required": ["candidate_id", "rationale"],
    "additionalProperties": False,
}

NOMINATION_INSTRUCTIONS = (
    "Pick the nutrition candidate that best matches the food the user ate. "
    "Return its id, or null when none of the candidates is the same food."
)


class ReasoningClient(Protocol):
    """Interface for a language model with strict JSON output."""

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        schema_name: str,
        schema: dict[str, object],
        instructions: str,
        payload: dict[str, object],
    ) -> dict[str, object]:
        """Return a JSON object matching the given schema."""


class NominationPayload(BaseModel):
    """Structured output for candidate nomination."""

    candidate_id: str | None
    rationale: str


@dataclass
class ReasoningCandidateNominator:
    """Ask the reasoning backend which ranked candidate fits a mention."""

    client: ReasoningClient
    model: str
    reasoning_effort: str | None = None
    store: bool = False

    async def nominate(
        self, mention: MealItemMention, ranked: list[RankedCandidate]
    ) -> str | None:
        """Return the id of the nominated candidate, or None."""
        raw = await self.client.complete(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            schema_name="candidate_nomination",
            schema=NOMINATION_SCHEMA,
            instructions=NOMINATION_INSTRUCTIONS,
            payload={
                "item": mention.name,
                "display_name": mention.display_name,
                "candidates": [
                    {
                        "id": entry.candidate.id,
                        "name": entry.candidate.name,
                        "brand": entry.candidate.brand,
                        "kcal_per_100g": entry.candidate.kcal_per_100g,
                        "protein_per_100g": entry.candidate.protein_per_100g,
                        "carbs_per_100g": entry.candidate.carbs_per_100g,
                        "fat_per_100g": entry.candidate.fat_per_100g,
                        "source": entry.candidate.source_label,
                        "score": entry.score,
                    }
                    for entry in ranked
                ],
            },
        )
        nomination = NominationPayload.model_validate(raw)
        _logger.info(
            "Candidate nominated: item=%s candidate=%s",
            mention.name,
            nomination.candidate_id,
        )
        return nomination.candidate_id
