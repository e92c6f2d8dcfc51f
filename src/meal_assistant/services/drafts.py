"""Parser-only quick logging used when the agent runtime is disabled."""

import logging
from dataclasses import dataclass

from meal_assistant.domain.agent import (
    AgentEnvelope,
    ConfidenceBreakdown,
    DraftItem,
    Entities,
    ItemConfidence,
    NormalizedDraft,
    RunResult,
)
from meal_assistant.domain.meals import EntryValues, confidence_score
from meal_assistant.domain.nutrition import (
    MacroProfile,
    Provenance,
    RankedCandidate,
    scale_from_per_100g,
)
from meal_assistant.services.agent import failed_turn_result
from meal_assistant.services.clock import Clock
from meal_assistant.services.meals import MealLogService
from meal_assistant.services.parser import UNKNOWN_MEAL, MealDraft, parse_log_meal
from meal_assistant.services.selection import (
    DEFAULT_GRAMS,
    DEFAULT_GRAMS_ASSUMPTION,
    CandidateRanker,
    is_plausible,
)

_logger = logging.getLogger(__name__)

PARSED_PROVENANCE = Provenance(
    source_type="parsed",
    label="Text parser",
    url=None,
    rationale="Values parsed from the message text.",
)


@dataclass
class DraftLogService:
    """Store a single parsed entry, filling gaps from the top lookup."""

    ranker: CandidateRanker
    meal_service: MealLogService
    clock: Clock

    async def quick_log(
        self, text: str, active_meal_id: int | None = None
    ) -> RunResult:
        """Parse text into one standalone entry and persist it."""
        draft = parse_log_meal(text)
        values = await self._entry_values(draft)
        try:
            entry_id = self.meal_service.create_standalone_entry(
                values, self.clock.now()
            )
        except Exception:
            _logger.exception("Quick log failed for %s", draft.item)
            return failed_turn_result(active_meal_id)

        score = values.confidence
        return RunResult(
            envelope=AgentEnvelope(
                ok=True,
                message=f"Logged {draft.item}.",
                actions=["log"],
                entities=Entities(entry_ids=[entry_id]),
                confidence=ConfidenceBreakdown(
                    overall=score, items=[ItemConfidence(item=draft.item, score=score)]
                ),
            ),
            action="log_meal",
            active_meal_id=active_meal_id,
            normalized_draft=NormalizedDraft(
                raw_text=draft.raw_text,
                items=[
                    DraftItem(
                        name=draft.item,
                        display_name=None,
                        amount_grams=values.amount_grams,
                        kcal=values.kcal,
                        protein_g=values.protein_g,
                        carbs_g=values.carbs_g,
                        fat_g=values.fat_g,
                        assumptions=list(values.assumptions),
                        source=values.source,
                    )
                ],
                assumptions=list(values.assumptions),
                confidence=draft.confidence,
            ),
            saved_entry_ids=[entry_id],
        )

    async def _entry_values(self, draft: MealDraft) -> EntryValues:
        parsed = {
            "kcal": draft.kcal,
            "protein_g": draft.protein_g,
            "carbs_g": draft.carbs_g,
            "fat_g": draft.fat_g,
        }
        assumptions = list(draft.assumptions)
        provenance = PARSED_PROVENANCE
        source = "user"

        missing = [name for name, value in parsed.items() if value is None]
        top = await self._top_candidate(draft) if missing else None
        if top is not None:
            grams = draft.amount_grams
            if grams is None:
                grams = DEFAULT_GRAMS
                assumptions.append(DEFAULT_GRAMS_ASSUMPTION)
            scaled: MacroProfile = scale_from_per_100g(top.candidate, grams)
            for name in missing:
                parsed[name] = getattr(scaled, name)
            source = "mixed" if len(missing) < len(parsed) else "lookup"
            provenance = Provenance(
                source_type=top.candidate.source_type,
                label=top.candidate.source_label,
                url=top.candidate.url,
                rationale=top.rationale,
            )

        return EntryValues(
            item=draft.item,
            amount_grams=draft.amount_grams,
            kcal=parsed["kcal"],
            protein_g=parsed["protein_g"],
            carbs_g=parsed["carbs_g"],
            fat_g=parsed["fat_g"],
            source=source,
            confidence=confidence_score(draft.confidence),
            assumptions=tuple(assumptions),
            provenance=provenance,
            raw_text=draft.raw_text,
        )

    async def _top_candidate(self, draft: MealDraft) -> RankedCandidate | None:
        if draft.item == UNKNOWN_MEAL:
            return None
        try:
            ranked = await self.ranker.rank(draft.item, 1)
        except Exception as exc:
            _logger.warning("Lookup failed for %s: %s", draft.item, exc)
            return None
        if not ranked or not is_plausible(draft.item, ranked[0].candidate):
            return None
        return ranked[0]
