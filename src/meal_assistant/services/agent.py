"""Conversational turn orchestration."""

import logging
from dataclasses import dataclass, field, replace

from meal_assistant.domain.agent import (
    AgentEnvelope,
    ConfidenceBreakdown,
    DraftItem,
    Entities,
    ItemConfidence,
    MealSummary,
    NormalizedDraft,
    RunResult,
)
from meal_assistant.domain.intents import ITEM_ACTIONS, AgentIntent, AgentRequest
from meal_assistant.domain.meals import (
    LocalNow,
    MealListing,
    ResolvedItem,
    confidence_label,
    sum_totals,
)
from meal_assistant.services.clock import Clock
from meal_assistant.services.intents import (
    MISSING_ITEMS_QUESTIONS,
    HeuristicIntentClassifier,
    IntentClassifier,
    has_explicit_delete,
    parse_meal_id_from_text,
)
from meal_assistant.services.meals import MealLogService
from meal_assistant.services.quantities import format_number, normalize_item_quantity
from meal_assistant.services.selection import CandidateSelector
from meal_assistant.services.sessions import SessionService

_logger = logging.getLogger(__name__)

# Items below this confidence without calories block the whole turn.
MIN_ITEM_CONFIDENCE = 0.3

SAVE_FAILED_MESSAGE = "Something went wrong while saving your meal. Please try again."
DEFAULT_QUESTION = "Can you share a bit more detail?"
DELETE_CONFIRM_MESSAGE = (
    "Do you want to delete a meal? Please say delete and specify the target."
)
DELETE_CONFIRM_QUESTION = (
    "Please confirm delete and specify 'this meal', '#ID', or 'all meals today'."
)
DELETE_TARGET_MESSAGE = (
    "Please specify which meal to delete "
    "(for example: delete meal #3 or delete this meal)."
)
DELETE_TARGET_QUESTION = "Specify the meal id or say 'delete all meals today'."
UPDATE_TARGET_MESSAGE = (
    "I couldn't find which meal to update. "
    "Please reference the meal ID or open a meal first."
)
UPDATE_TARGET_QUESTION = "Tell me which meal to update, e.g. 'update meal #12'."


def failed_turn_result(active_meal_id: int | None) -> RunResult:
    """Build the result returned when a turn could not be saved."""
    return RunResult(
        envelope=AgentEnvelope(
            ok=False,
            message=SAVE_FAILED_MESSAGE,
            actions=[],
            entities=Entities(),
            confidence=ConfidenceBreakdown(overall=0.0),
        ),
        action="log_meal",
        active_meal_id=active_meal_id,
    )


def summarize_items(items: list[ResolvedItem]) -> MealSummary:
    """Describe logged items with their calories and the total."""
    totals = sum_totals(items)
    if not items:
        return MealSummary(text="No food items were logged.", totals=totals)
    parts = " + ".join(
        f"{item.display_name} ({_kcal_text(item.kcal, '?')} kcal)" for item in items
    )
    return MealSummary(
        text=f"Logged {parts}. Total: {format_number(totals.kcal)} kcal.",
        totals=totals,
    )


def format_meal_listing(meals: list[MealListing]) -> str:
    """Render today's meals as a short listing."""
    if not meals:
        return "You have no meals logged for today."
    lines = [
        f"#{meal.id} {meal.label} at {meal.local_time} "
        f"({_kcal_text(meal.kcal, '-')} kcal)"
        for meal in meals
    ]
    return "Here are your meals for today:\n" + "\n".join(lines)


@dataclass
class MealAgent:
    """Run one conversational turn from intent to persisted entries."""

    classifier: IntentClassifier
    selector: CandidateSelector
    meal_service: MealLogService
    session_service: SessionService
    clock: Clock
    agent_model: str | None = None
    fallback_classifier: IntentClassifier = field(
        default_factory=HeuristicIntentClassifier
    )

    async def process_turn(self, request: AgentRequest) -> RunResult:
        """Process a user message and return the response envelope."""
        try:
            return await self._process(request)
        except Exception:
            _logger.exception("Agent turn failed: session=%s", request.session_id)
            return failed_turn_result(request.active_meal_id)

    async def _process(self, request: AgentRequest) -> RunResult:
        if request.active_meal_id is None:
            stored = self.session_service.active_meal_id(request.session_id)
            request = replace(request, active_meal_id=stored)

        intent = await self._classify(request)
        if (
            intent.action in ITEM_ACTIONS
            and not intent.items
            and not intent.requires_input
        ):
            intent = replace(
                intent, requires_input=MISSING_ITEMS_QUESTIONS[intent.action]
            )
        _logger.info(
            "Turn classified: session=%s action=%s items=%s",
            request.session_id,
            intent.action,
            len(intent.items),
        )
        now = self.clock.now()

        if intent.action == "clarify" or intent.requires_input:
            return self._clarify(request, intent)
        if intent.action == "list":
            return self._list(request, intent, now)
        if intent.action == "delete":
            return self._delete(request, intent, now)
        return await self._log_or_update(request, intent, now)

    async def _classify(self, request: AgentRequest) -> AgentIntent:
        try:
            return await self.classifier.classify(request)
        except Exception as exc:
            _logger.warning("Intent classification failed, using heuristics: %s", exc)
            return await self.fallback_classifier.classify(request)

    def _clarify(self, request: AgentRequest, intent: AgentIntent) -> RunResult:
        question = intent.requires_input or DEFAULT_QUESTION
        self.session_service.remember(
            request.session_id, request.active_meal_id, "clarify"
        )
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=request.active_meal_id,
            action_type="clarify",
            status="requires_input",
            raw_text=request.text,
            resolved_intent=intent.action,
            reason=intent.requires_input or intent.reason,
        )
        return _question_result(
            action="log_meal",
            active_meal_id=request.active_meal_id,
            message=question,
            question=question,
            overall=max(0.25, intent.confidence),
        )

    def _list(
        self, request: AgentRequest, intent: AgentIntent, now: LocalNow
    ) -> RunResult:
        meals = self.meal_service.list_meals(now.date)
        message = format_meal_listing(meals)
        active_meal_id = meals[0].id if meals else request.active_meal_id
        self.session_service.remember(request.session_id, active_meal_id, "list")
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=active_meal_id,
            action_type="list",
            status="ok",
            raw_text=request.text,
            resolved_intent="list",
        )
        return RunResult(
            envelope=AgentEnvelope(
                ok=True,
                message=message,
                actions=["list"],
                entities=Entities(meal_ids=[meal.id for meal in meals]),
                confidence=ConfidenceBreakdown(overall=max(0.5, intent.confidence)),
            ),
            action="list_meals",
            active_meal_id=active_meal_id,
            meals=meals,
        )

    def _delete(
        self, request: AgentRequest, intent: AgentIntent, now: LocalNow
    ) -> RunResult:
        if not has_explicit_delete(request.text):
            return self._ask(
                request,
                intent,
                "delete_meal",
                DELETE_CONFIRM_MESSAGE,
                DELETE_CONFIRM_QUESTION,
            )

        delete_all = intent.delete_scope == "all"
        target_meal_id = _target_meal_id(intent, request)
        if not delete_all and (
            target_meal_id is None
            or self.meal_service.get_meal(target_meal_id) is None
        ):
            return self._ask(
                request,
                intent,
                "delete_meal",
                DELETE_TARGET_MESSAGE,
                DELETE_TARGET_QUESTION,
            )

        deleted = self.meal_service.delete_meals(
            target_meal_id, now.date, delete_all=delete_all
        )
        if not deleted:
            message = "No meals matched your delete request."
        elif delete_all:
            message = f"Deleted {len(deleted)} meal(s) for today."
        else:
            message = f"Deleted meal #{deleted[0]}."

        active_meal_id = None if deleted else request.active_meal_id
        self.session_service.remember(request.session_id, active_meal_id, "delete")
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=target_meal_id,
            action_type="delete",
            status="ok" if deleted else "noop",
            raw_text=request.text,
            resolved_intent="delete",
        )
        return RunResult(
            envelope=AgentEnvelope(
                ok=True,
                message=message,
                actions=["delete"],
                entities=Entities(meal_ids=deleted),
                confidence=ConfidenceBreakdown(overall=max(0.5, intent.confidence)),
            ),
            action="delete_meal",
            active_meal_id=active_meal_id,
        )

    async def _log_or_update(
        self, request: AgentRequest, intent: AgentIntent, now: LocalNow
    ) -> RunResult:
        resolved = [
            await self.selector.resolve(normalize_item_quantity(mention))
            for mention in intent.items
        ]
        item_scores = [
            ItemConfidence(item=item.display_name, score=item.confidence)
            for item in resolved
        ]

        unresolved = next(
            (
                item
                for item in resolved
                if item.confidence < MIN_ITEM_CONFIDENCE and item.kcal is None
            ),
            None,
        )
        if unresolved is not None:
            message = (
                f"I could not confidently resolve {unresolved.display_name}. "
                "Can you share brand or package details?"
            )
            question = (
                f"Please share brand/package details for {unresolved.display_name}."
            )
            self.session_service.log_action(
                session_id=request.session_id,
                meal_id=request.active_meal_id,
                action_type=intent.action,
                status="requires_input",
                raw_text=request.text,
                resolved_intent=intent.action,
                reason=message,
            )
            return _question_result(
                action="log_meal",
                active_meal_id=request.active_meal_id,
                message=message,
                question=question,
                overall=MIN_ITEM_CONFIDENCE,
                items=item_scores,
            )

        if resolved:
            overall = sum(item.confidence for item in resolved) / len(resolved)
        else:
            overall = max(0.5, intent.confidence)

        if intent.action in {"patch", "replace"}:
            return self._update(request, intent, now, resolved, overall, item_scores)

        created = self.meal_service.create_meal(
            request.text,
            resolved,
            now,
            confidence=overall,
            agent_model=self.agent_model,
        )
        summary = summarize_items(resolved)
        self.session_service.remember(request.session_id, created.meal_id, "log")
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=created.meal_id,
            action_type="log",
            status="ok",
            raw_text=request.text,
            resolved_intent="log",
            entry_ids=created.entry_ids,
        )
        return RunResult(
            envelope=AgentEnvelope(
                ok=True,
                message=summary.text,
                actions=["log"],
                entities=Entities(
                    meal_ids=[created.meal_id], entry_ids=created.entry_ids
                ),
                confidence=ConfidenceBreakdown(overall=overall, items=item_scores),
            ),
            action="log_meal",
            active_meal_id=created.meal_id,
            normalized_draft=_normalized_draft(request.text, resolved, overall),
            meal_summary=summary,
            saved_meal_id=created.meal_id,
            saved_entry_ids=created.entry_ids,
        )

    def _update(  # noqa: PLR0913
        self,
        request: AgentRequest,
        intent: AgentIntent,
        now: LocalNow,
        resolved: list[ResolvedItem],
        overall: float,
        item_scores: list[ItemConfidence],
    ) -> RunResult:
        meal_id = _target_meal_id(intent, request)
        if meal_id is None:
            meal = self.meal_service.latest_meal(now.date)
        else:
            meal = self.meal_service.get_meal(meal_id)
        if meal is None:
            return self._ask(
                request,
                intent,
                "update_meal",
                UPDATE_TARGET_MESSAGE,
                UPDATE_TARGET_QUESTION,
                overall=max(0.4, overall),
            )

        replace_all = intent.action == "replace"
        reconciled = self.meal_service.reconcile_entries(
            meal,
            resolved,
            replace_all=replace_all,
            raw_text=request.text,
            agent_model=self.agent_model,
        )
        total_kcal = format_number(reconciled.totals.kcal)
        if replace_all:
            message = f"Replaced meal #{meal.id}. New total is {total_kcal} kcal."
        else:
            names = ", ".join(item.display_name for item in resolved)
            message = (
                f"Updated {names} in meal #{meal.id}. Other items were kept. "
                f"New total is {total_kcal} kcal."
            )

        self.session_service.remember(request.session_id, meal.id, intent.action)
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=meal.id,
            action_type=intent.action,
            status="ok",
            raw_text=request.text,
            resolved_intent=intent.action,
            entry_ids=reconciled.entry_ids,
        )
        return RunResult(
            envelope=AgentEnvelope(
                ok=True,
                message=message,
                actions=["patch"],
                entities=Entities(meal_ids=[meal.id], entry_ids=reconciled.entry_ids),
                confidence=ConfidenceBreakdown(overall=overall, items=item_scores),
            ),
            action="update_meal",
            active_meal_id=meal.id,
            normalized_draft=_normalized_draft(request.text, resolved, overall),
            meal_summary=summarize_items(resolved),
            saved_entry_ids=reconciled.entry_ids,
        )

    def _ask(  # noqa: PLR0913
        self,
        request: AgentRequest,
        intent: AgentIntent,
        action: str,
        message: str,
        question: str,
        overall: float = 0.5,
    ) -> RunResult:
        self.session_service.log_action(
            session_id=request.session_id,
            meal_id=request.active_meal_id,
            action_type=intent.action,
            status="requires_input",
            raw_text=request.text,
            resolved_intent=intent.action,
            reason=question,
        )
        return _question_result(
            action=action,
            active_meal_id=request.active_meal_id,
            message=message,
            question=question,
            overall=overall,
        )


def _target_meal_id(intent: AgentIntent, request: AgentRequest) -> int | None:
    if intent.target_meal_id is not None:
        return intent.target_meal_id
    from_text = parse_meal_id_from_text(request.text)
    if from_text is not None:
        return from_text
    return request.active_meal_id


def _question_result(  # noqa: PLR0913
    *,
    action: str,
    active_meal_id: int | None,
    message: str,
    question: str,
    overall: float,
    items: list[ItemConfidence] | None = None,
) -> RunResult:
    return RunResult(
        envelope=AgentEnvelope(
            ok=True,
            message=message,
            actions=[],
            entities=Entities(),
            confidence=ConfidenceBreakdown(overall=overall, items=items or []),
            requires_input=question,
        ),
        action=action,
        active_meal_id=active_meal_id,
    )


def _normalized_draft(
    raw_text: str, items: list[ResolvedItem], overall: float
) -> NormalizedDraft:
    return NormalizedDraft(
        raw_text=raw_text,
        items=[
            DraftItem(
                name=item.name,
                display_name=item.display_name,
                amount_grams=item.amount_grams,
                kcal=item.kcal,
                protein_g=item.protein_g,
                carbs_g=item.carbs_g,
                fat_g=item.fat_g,
                assumptions=list(item.assumptions),
                source=item.source,
            )
            for item in items
        ],
        assumptions=[assumption for item in items for assumption in item.assumptions],
        confidence=confidence_label(overall),
    )


def _kcal_text(kcal: float | None, missing: str) -> str:
    if kcal is None:
        return missing
    return format_number(kcal)
