"""Pick nutrition values for a mention from user data, lookups or estimates."""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from meal_assistant.domain.meals import MealItemMention, ResolvedItem
from meal_assistant.domain.nutrition import (
    MacroProfile,
    NutritionCandidate,
    Provenance,
    RankedCandidate,
    kcal_from_macros,
    round1,
    scale_from_per_100g,
)
from meal_assistant.services.parser import MACRO_ESTIMATE_ASSUMPTION
from meal_assistant.services.quantities import item_display_label

_logger = logging.getLogger(__name__)

USER_CONFIDENCE = 0.95
ESTIMATE_CONFIDENCE = 0.55
UNRESOLVED_CONFIDENCE = 0.25
MIN_LOOKUP_CONFIDENCE = 0.35
MAX_LOOKUP_CONFIDENCE = 0.95
RANK_LIMIT = 5
DEFAULT_GRAMS = 100

# Tunable plausibility limits.
MAX_KCAL_PER_100G = 900
MAX_MACROS_PER_100G = 105
EGG_MAX_CARBS_PER_100G = 10

USER_ASSUMPTION = "Used explicit nutrition from user message."
DEFAULT_GRAMS_ASSUMPTION = "No grams provided; lookup assumed 100g."
UNRESOLVED_ASSUMPTION = "No reliable candidate found."

_EGG_RE = re.compile(r"\b(?:egg|eggs|ei|eier)\b")

_NUTRITION_FIELDS = ("kcal", "protein_g", "carbs_g", "fat_g")


class CandidateRanker(Protocol):
    """Interface for ranked candidate lookups."""

    async def rank(self, item: str, limit: int = 5) -> list[RankedCandidate]:
        """Return ranked candidates for an item name."""


class CandidateNominator(Protocol):
    """Interface for a reasoning step that nominates a candidate."""

    async def nominate(
        self, mention: MealItemMention, ranked: list[RankedCandidate]
    ) -> str | None:
        """Return the nominated candidate id, or None."""


@dataclass(frozen=True)
class _Estimate:
    label: str
    per_100g: MacroProfile


_ESTIMATES = {
    "eggs": _Estimate("eggs", MacroProfile(143, 12.6, 1.1, 9.5)),
    "chicken": _Estimate("chicken breast", MacroProfile(165, 31, 0, 3.6)),
    "rice": _Estimate("cooked rice", MacroProfile(131, 2.7, 28, 0.3)),
    "skyr": _Estimate("skyr", MacroProfile(62, 11, 4, 0.2)),
    "almond": _Estimate("almonds", MacroProfile(579, 21.2, 21.6, 49.9)),
}


def has_egg_token(text: str) -> bool:
    """Return whether the text names eggs."""
    return _EGG_RE.search(text.lower()) is not None


def is_plausible(item_name: str, candidate: NutritionCandidate) -> bool:
    """Check per-100g values and egg naming for a candidate."""
    if not 0 < candidate.kcal_per_100g <= MAX_KCAL_PER_100G:
        return False
    macro_sum = (
        candidate.protein_per_100g + candidate.carbs_per_100g + candidate.fat_per_100g
    )
    if not 0 < macro_sum <= MAX_MACROS_PER_100G:
        return False
    if has_egg_token(item_name):
        if not has_egg_token(candidate.name):
            return False
        if candidate.carbs_per_100g > EGG_MAX_CARBS_PER_100G:
            return False
    return True


@dataclass
class CandidateSelector:
    """Resolve a mention into nutrition values with provenance."""

    ranker: CandidateRanker
    nominator: CandidateNominator | None = None

    async def resolve(self, mention: MealItemMention) -> ResolvedItem:
        """Resolve a single mention, preferring user-supplied values per field."""
        user_values, derived = _user_values(mention)
        if all(user_values[name] is not None for name in _NUTRITION_FIELDS):
            return self._from_user(mention, user_values, derived)

        looked_up = await self._lookup(mention)
        if all(user_values[name] is None for name in _NUTRITION_FIELDS):
            return looked_up
        return _merge_user_values(mention, user_values, derived, looked_up)

    def _from_user(
        self,
        mention: MealItemMention,
        values: dict[str, float | None],
        derived: bool,
    ) -> ResolvedItem:
        assumptions = [*mention.assumptions, USER_ASSUMPTION]
        if derived:
            assumptions.append(MACRO_ESTIMATE_ASSUMPTION)
        return ResolvedItem(
            name=mention.name,
            display_name=item_display_label(mention),
            amount_grams=mention.amount_grams,
            kcal=values["kcal"],
            protein_g=values["protein_g"],
            carbs_g=values["carbs_g"],
            fat_g=values["fat_g"],
            source="user",
            confidence=USER_CONFIDENCE,
            assumptions=tuple(assumptions),
            provenance=Provenance(
                source_type="user",
                label="User provided",
                url=None,
                rationale="Direct value override supplied by user.",
            ),
        )

    async def _lookup(self, mention: MealItemMention) -> ResolvedItem:
        try:
            ranked = await self.ranker.rank(mention.name, RANK_LIMIT)
        except Exception as exc:
            _logger.warning("Candidate lookup failed for %s: %s", mention.name, exc)
            ranked = []

        chosen = await self._choose(mention, ranked) if ranked else None
        if chosen is not None:
            return _from_candidate(mention, chosen)

        estimate = _estimate_for(mention.name)
        if estimate is not None:
            return _from_estimate(mention, estimate)

        _logger.info("No candidate resolved for %s", mention.name)
        return _unresolved(mention)

    async def _choose(
        self, mention: MealItemMention, ranked: list[RankedCandidate]
    ) -> RankedCandidate | None:
        nominee = ranked[0]
        if self.nominator is not None:
            try:
                nominated_id = await self.nominator.nominate(mention, ranked)
            except Exception as exc:
                _logger.warning("Candidate nomination failed: %s", exc)
                nominated_id = None
            for entry in ranked:
                if entry.candidate.id == nominated_id:
                    nominee = entry
                    break

        if is_plausible(mention.name, nominee.candidate):
            return nominee
        _logger.info(
            "Rejected implausible candidate %s for %s",
            nominee.candidate.id,
            mention.name,
        )
        for entry in ranked:
            if is_plausible(mention.name, entry.candidate):
                return entry
        return None


def _user_values(mention: MealItemMention) -> tuple[dict[str, float | None], bool]:
    values: dict[str, float | None] = {
        name: getattr(mention, name) for name in _NUTRITION_FIELDS
    }
    macros = (values["protein_g"], values["carbs_g"], values["fat_g"])
    if values["kcal"] is None and None not in macros:
        values["kcal"] = kcal_from_macros(*macros)
        return values, True
    return values, False


def _portion(mention: MealItemMention) -> tuple[float, list[str]]:
    if mention.amount_grams is not None:
        return mention.amount_grams, []
    return DEFAULT_GRAMS, [DEFAULT_GRAMS_ASSUMPTION]


def _from_candidate(mention: MealItemMention, ranked: RankedCandidate) -> ResolvedItem:
    grams, assumptions = _portion(mention)
    scaled = scale_from_per_100g(ranked.candidate, grams)
    confidence = max(
        MIN_LOOKUP_CONFIDENCE, min(MAX_LOOKUP_CONFIDENCE, round1(ranked.score))
    )
    return ResolvedItem(
        name=mention.name,
        display_name=item_display_label(mention),
        amount_grams=mention.amount_grams,
        kcal=scaled.kcal,
        protein_g=scaled.protein_g,
        carbs_g=scaled.carbs_g,
        fat_g=scaled.fat_g,
        source="lookup",
        confidence=confidence,
        assumptions=(*mention.assumptions, *assumptions),
        provenance=Provenance(
            source_type=ranked.candidate.source_type,
            label=ranked.candidate.source_label,
            url=ranked.candidate.url,
            rationale=ranked.rationale,
        ),
    )


def _estimate_for(name: str) -> _Estimate | None:
    lower = name.lower()
    if has_egg_token(lower):
        return _ESTIMATES["eggs"]
    for key in ("chicken", "rice", "skyr", "almond"):
        if key in lower:
            return _ESTIMATES[key]
    return None


def _from_estimate(mention: MealItemMention, estimate: _Estimate) -> ResolvedItem:
    grams, assumptions = _portion(mention)
    per_100g = estimate.per_100g
    factor = grams / 100
    return ResolvedItem(
        name=mention.name,
        display_name=item_display_label(mention),
        amount_grams=mention.amount_grams,
        kcal=round1(per_100g.kcal * factor),
        protein_g=round1(per_100g.protein_g * factor),
        carbs_g=round1(per_100g.carbs_g * factor),
        fat_g=round1(per_100g.fat_g * factor),
        source="estimated",
        confidence=ESTIMATE_CONFIDENCE,
        assumptions=(
            *mention.assumptions,
            *assumptions,
            f"Used built-in estimate for {estimate.label}.",
        ),
        provenance=Provenance(
            source_type="estimated",
            label="Built-in fallback",
            url=None,
            rationale=f"Applied fallback profile for {estimate.label}.",
        ),
    )


def _unresolved(mention: MealItemMention) -> ResolvedItem:
    return ResolvedItem(
        name=mention.name,
        display_name=item_display_label(mention),
        amount_grams=mention.amount_grams,
        kcal=None,
        protein_g=None,
        carbs_g=None,
        fat_g=None,
        source="estimated",
        confidence=UNRESOLVED_CONFIDENCE,
        assumptions=(*mention.assumptions, UNRESOLVED_ASSUMPTION),
        provenance=Provenance(
            source_type=None,
            label=None,
            url=None,
            rationale="Could not resolve nutrition confidently.",
        ),
    )


def _merge_user_values(
    mention: MealItemMention,
    user_values: dict[str, float | None],
    derived: bool,
    looked_up: ResolvedItem,
) -> ResolvedItem:
    """Keep every user value and fill the remaining fields from a lookup."""
    merged: dict[str, float | None] = {}
    scores = []
    for name in _NUTRITION_FIELDS:
        user_value = user_values[name]
        if user_value is not None:
            merged[name] = user_value
            scores.append(USER_CONFIDENCE)
        else:
            merged[name] = getattr(looked_up, name)
            scores.append(looked_up.confidence)

    assumptions = [*mention.assumptions, USER_ASSUMPTION]
    if derived:
        assumptions.append(MACRO_ESTIMATE_ASSUMPTION)
    assumptions.extend(
        assumption
        for assumption in looked_up.assumptions[len(mention.assumptions) :]
        if assumption not in assumptions
    )
    source_label = looked_up.provenance.label or "no source"
    return ResolvedItem(
        name=mention.name,
        display_name=looked_up.display_name,
        amount_grams=mention.amount_grams,
        kcal=merged["kcal"],
        protein_g=merged["protein_g"],
        carbs_g=merged["carbs_g"],
        fat_g=merged["fat_g"],
        source="mixed",
        confidence=sum(scores) / len(scores),
        assumptions=tuple(assumptions),
        provenance=Provenance(
            source_type=looked_up.provenance.source_type,
            label=looked_up.provenance.label,
            url=looked_up.provenance.url,
            rationale=(
                f"User values kept; missing fields filled from {source_label}."
            ),
        ),
    )
