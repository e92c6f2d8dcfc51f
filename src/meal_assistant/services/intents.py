"""Intent classification for conversational turns."""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from meal_assistant.domain.intents import (
    ITEM_ACTIONS,
    AgentAction,
    AgentIntent,
    AgentRequest,
    DeleteScope,
    HistoryTurn,
    IntentPayload,
)
from meal_assistant.domain.meals import MealItemMention
from meal_assistant.services.quantities import format_number
from meal_assistant.services.reasoning import (
    INTENT_INSTRUCTIONS,
    INTENT_SCHEMA,
    ReasoningClient,
)

_logger = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 8
MAX_FALLBACK_NAME_LENGTH = 64

LIST_CONFIDENCE = 0.7
DELETE_CONFIDENCE = 0.7
EDIT_CONFIDENCE = 0.65
LOG_CONFIDENCE = 0.75

_HASH_REF_RE = re.compile(r"#(\d+)")
_MEAL_REF_RE = re.compile(r"\bmeal\s+(\d+)\b")
_LIST_RE = re.compile(r"list|show|what are my meals|my meals")
_DELETE_RE = re.compile(r"delete|remove|erase|clear")
_DELETE_ALL_RE = re.compile(r"\b(?:all|today|everything|meals)\b")
_REPLACE_RE = re.compile(r"replace|instead|meal\s+\w+\s+was")
_PATCH_RE = re.compile(r"change|update|actually|correct")
_GRAMS_ITEM_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s?g\s+(.+?)(?=\s+and\s+|,\s*|\s*\+\s*|$)"
)
_FALLBACK_STOP_WORDS_RE = re.compile(
    r"\b(?:i|ate|had|for|breakfast|lunch|dinner|snack|and|with|the|a|an|to|please)\b"
)

MISSING_ITEMS_QUESTIONS = {
    "log": "I can log this once you tell me at least one food item.",
    "patch": "Tell me what you want to change in the meal.",
    "replace": "Tell me what the replacement meal should include.",
}


class IntentClassifier(Protocol):
    """Interface for turning a message into an intent."""

    async def classify(self, request: AgentRequest) -> AgentIntent:
        """Return the structured intent for a request."""


def parse_meal_id_from_text(text: str) -> int | None:
    """Find an explicit meal reference such as '#12' or 'meal 12'."""
    match = _HASH_REF_RE.search(text)
    if match:
        return int(match.group(1))
    match = _MEAL_REF_RE.search(text.lower())
    if match:
        return int(match.group(1))
    return None


def has_explicit_delete(text: str) -> bool:
    """Return whether the text contains an explicit delete word."""
    return _DELETE_RE.search(text.lower()) is not None


def extract_gram_items(text: str) -> list[MealItemMention]:
    """Extract '<number> g <name>' mentions from lowercased text."""
    items = []
    for match in _GRAMS_ITEM_RE.finditer(text.lower()):
        grams = float(match.group(1))
        name = match.group(2).strip()
        if not name:
            continue
        items.append(
            MealItemMention(
                name=name,
                display_name=f"{format_number(grams)}g {name}",
                amount_grams=grams,
            )
        )
    return items


def heuristic_intent(text: str) -> AgentIntent:
    """Classify a message with keyword rules."""
    lower = text.lower().strip()
    target_meal_id = parse_meal_id_from_text(text)

    if _LIST_RE.search(lower):
        return _intent("list", target_meal_id, [], "none", LIST_CONFIDENCE)

    if _DELETE_RE.search(lower):
        scope: DeleteScope = "all" if _DELETE_ALL_RE.search(lower) else "one"
        return _intent("delete", target_meal_id, [], scope, DELETE_CONFIDENCE)

    items = extract_gram_items(lower)
    if _REPLACE_RE.search(lower):
        return _intent("replace", target_meal_id, items, "none", EDIT_CONFIDENCE)
    if _PATCH_RE.search(lower):
        return _intent("patch", target_meal_id, items, "none", EDIT_CONFIDENCE)

    if not items:
        fallback_name = " ".join(_FALLBACK_STOP_WORDS_RE.sub(" ", lower).split())
        fallback_name = fallback_name[:MAX_FALLBACK_NAME_LENGTH]
        if len(fallback_name) > 1:
            items = [MealItemMention(name=fallback_name, display_name=fallback_name)]
    return _intent("log", target_meal_id, items, "none", LOG_CONFIDENCE)


def _intent(
    action: AgentAction,
    target_meal_id: int | None,
    items: list[MealItemMention],
    delete_scope: DeleteScope,
    confidence: float,
) -> AgentIntent:
    requires_input = None
    if action in ITEM_ACTIONS and not items:
        requires_input = MISSING_ITEMS_QUESTIONS[action]
    return AgentIntent(
        action=action,
        target_meal_id=target_meal_id,
        items=items,
        delete_scope=delete_scope,
        confidence=confidence,
        requires_input=requires_input,
        reason=f"Heuristic {action} intent",
    )


def normalize_history(history: list[HistoryTurn]) -> list[HistoryTurn]:
    """Keep the most recent non-empty turns."""
    turns = [turn for turn in history if turn.text.strip()]
    return turns[-MAX_HISTORY_TURNS:]


@dataclass
class HeuristicIntentClassifier(IntentClassifier):
    """Keyword based classifier used without a reasoning backend."""

    async def classify(self, request: AgentRequest) -> AgentIntent:
        """Classify the request text with keyword rules."""
        return heuristic_intent(request.text)


@dataclass
class ReasoningIntentClassifier(IntentClassifier):
    """Classifier backed by a reasoning model with strict JSON output."""

    client: ReasoningClient
    model: str
    reasoning_effort: str | None = None
    store: bool = False

    async def classify(self, request: AgentRequest) -> AgentIntent:
        """Ask the reasoning backend for a structured intent."""
        raw = await self.client.complete(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            schema_name="agent_intent",
            schema=INTENT_SCHEMA,
            instructions=INTENT_INSTRUCTIONS,
            payload={
                "text": request.text,
                "active_meal_id": request.active_meal_id,
                "history": [
                    {"role": turn.role, "text": turn.text}
                    for turn in normalize_history(request.history)
                ],
            },
        )
        intent = IntentPayload.model_validate(raw).to_intent()
        _logger.info(
            "Intent classified: action=%s items=%s confidence=%s",
            intent.action,
            len(intent.items),
            intent.confidence,
        )
        return intent
