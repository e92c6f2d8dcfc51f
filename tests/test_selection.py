"""Tests for candidate selection and fallbacks."""

import asyncio
from dataclasses import dataclass, field

import pytest

from meal_assistant.domain.meals import MealItemMention
from meal_assistant.domain.nutrition import RankedCandidate
from meal_assistant.services.parser import MACRO_ESTIMATE_ASSUMPTION
from meal_assistant.services.selection import (
    DEFAULT_GRAMS_ASSUMPTION,
    UNRESOLVED_ASSUMPTION,
    USER_ASSUMPTION,
    CandidateSelector,
    has_egg_token,
    is_plausible,
)
from tests.conftest import FakeRanker, make_candidate, make_ranked

EGG_NOODLES = make_candidate("noodles", "Egg noodles", 380, 14, 70, 3)
FREE_RANGE_EGGS = make_candidate("eggs", "Free range eggs", 143, 12.6, 1.1, 9.5)
PROTEIN_BAR = make_candidate("bar", "Protein bar", 400, 30, 40, 15)


@dataclass
class FakeNominator:
    candidate_id: str | None = None
    error: Exception | None = None
    calls: list[list[str]] = field(default_factory=list)

    async def nominate(
        self, mention: MealItemMention, ranked: list[RankedCandidate]
    ) -> str | None:
        self.calls.append([entry.candidate.id for entry in ranked])
        if self.error is not None:
            raise self.error
        return self.candidate_id


def test_user_values_take_precedence_over_lookup() -> None:
    ranker = FakeRanker()
    selector = CandidateSelector(ranker=ranker)
    mention = MealItemMention(
        name="protein bar", kcal=200, protein_g=20, carbs_g=22, fat_g=7
    )

    resolved = asyncio.run(selector.resolve(mention))

    assert resolved.source == "user"
    assert resolved.confidence == 0.95
    assert (resolved.kcal, resolved.protein_g, resolved.carbs_g, resolved.fat_g) == (
        200,
        20,
        22,
        7,
    )
    assert resolved.assumptions == (USER_ASSUMPTION,)
    assert resolved.provenance.label == "User provided"
    assert ranker.calls == []


def test_user_macros_derive_calories() -> None:
    selector = CandidateSelector(ranker=FakeRanker())
    mention = MealItemMention(name="shake", protein_g=10, carbs_g=20, fat_g=5)

    resolved = asyncio.run(selector.resolve(mention))

    assert resolved.source == "user"
    assert resolved.kcal == 165
    assert MACRO_ESTIMATE_ASSUMPTION in resolved.assumptions


def test_partial_user_values_are_merged_with_lookup() -> None:
    ranker = FakeRanker(results={"protein bar": [make_ranked(PROTEIN_BAR, 0.9)]})
    selector = CandidateSelector(ranker=ranker)
    mention = MealItemMention(name="protein bar", amount_grams=50, kcal=200)

    resolved = asyncio.run(selector.resolve(mention))

    assert resolved.source == "mixed"
    assert resolved.kcal == 200
    assert resolved.protein_g == 15
    assert resolved.carbs_g == 20
    assert resolved.fat_g == 7.5
    assert resolved.confidence == pytest.approx((0.95 + 0.9 * 3) / 4)
    assert resolved.assumptions[0] == USER_ASSUMPTION
    assert resolved.provenance.rationale == (
        "User values kept; missing fields filled from OpenFoodFacts DE."
    )


def test_lookup_scales_top_candidate_to_portion() -> None:
    ranker = FakeRanker(results={"protein bar": [make_ranked(PROTEIN_BAR, 0.8)]})
    selector = CandidateSelector(ranker=ranker)

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="protein bar", amount_grams=60))
    )

    assert resolved.source == "lookup"
    assert resolved.kcal == 240
    assert resolved.confidence == 0.8
    assert resolved.display_name == "60g protein bar"
    assert resolved.provenance.url == PROTEIN_BAR.url
    assert ranker.calls == [("protein bar", 5)]


def test_lookup_without_grams_assumes_100g() -> None:
    ranker = FakeRanker(results={"protein bar": [make_ranked(PROTEIN_BAR, 0.1)]})
    selector = CandidateSelector(ranker=ranker)

    resolved = asyncio.run(selector.resolve(MealItemMention(name="protein bar")))

    assert resolved.kcal == 400
    assert resolved.amount_grams is None
    assert resolved.confidence == 0.35
    assert resolved.assumptions == (DEFAULT_GRAMS_ASSUMPTION,)


def test_egg_guard_skips_implausible_top_candidate() -> None:
    ranker = FakeRanker(
        results={
            "eggs": [make_ranked(EGG_NOODLES, 0.9), make_ranked(FREE_RANGE_EGGS, 0.7)]
        }
    )
    selector = CandidateSelector(ranker=ranker)

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="eggs", amount_grams=100))
    )

    assert resolved.kcal == 143
    assert resolved.confidence == 0.7
    assert resolved.display_name == "100g eggs"


def test_nominated_candidate_is_used() -> None:
    ranker = FakeRanker(
        results={
            "protein bar": [
                make_ranked(PROTEIN_BAR, 0.9),
                make_ranked(make_candidate("alt", "Protein bar choc", 360, 33, 30, 12)),
            ]
        }
    )
    nominator = FakeNominator(candidate_id="alt")
    selector = CandidateSelector(ranker=ranker, nominator=nominator)

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="protein bar", amount_grams=100))
    )

    assert resolved.kcal == 360
    assert nominator.calls == [["bar", "alt"]]


def test_implausible_nominee_falls_back_to_first_plausible() -> None:
    ranker = FakeRanker(
        results={
            "eggs": [make_ranked(FREE_RANGE_EGGS, 0.8), make_ranked(EGG_NOODLES, 0.6)]
        }
    )
    selector = CandidateSelector(
        ranker=ranker, nominator=FakeNominator(candidate_id="noodles")
    )

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="eggs", amount_grams=100))
    )

    assert resolved.kcal == 143


def test_nominator_failure_keeps_top_candidate() -> None:
    ranker = FakeRanker(results={"protein bar": [make_ranked(PROTEIN_BAR, 0.9)]})
    selector = CandidateSelector(
        ranker=ranker, nominator=FakeNominator(error=RuntimeError("timeout"))
    )

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="protein bar", amount_grams=100))
    )

    assert resolved.kcal == 400


def test_builtin_estimate_when_lookup_is_empty() -> None:
    selector = CandidateSelector(ranker=FakeRanker())

    resolved = asyncio.run(selector.resolve(MealItemMention(name="grilled chicken")))

    assert resolved.source == "estimated"
    assert resolved.kcal == 165
    assert resolved.protein_g == 31
    assert resolved.confidence == 0.55
    assert resolved.assumptions == (
        DEFAULT_GRAMS_ASSUMPTION,
        "Used built-in estimate for chicken breast.",
    )
    assert resolved.provenance.label == "Built-in fallback"


def test_builtin_estimate_when_lookup_fails() -> None:
    selector = CandidateSelector(ranker=FakeRanker(error=RuntimeError("offline")))

    resolved = asyncio.run(
        selector.resolve(MealItemMention(name="basmati rice", amount_grams=200))
    )

    assert resolved.kcal == 262
    assert resolved.confidence == 0.55


def test_unresolved_item_has_no_nutrition() -> None:
    selector = CandidateSelector(ranker=FakeRanker())

    resolved = asyncio.run(selector.resolve(MealItemMention(name="dragon fruit")))

    assert resolved.confidence == 0.25
    assert resolved.kcal is None
    assert resolved.protein_g is None
    assert resolved.assumptions == (UNRESOLVED_ASSUMPTION,)
    assert resolved.provenance.source_type is None


def test_has_egg_token() -> None:
    assert has_egg_token("2 Eggs")
    assert has_egg_token("Bio Eier")
    assert not has_egg_token("eggplant")


@pytest.mark.parametrize(
    ("name", "kcal", "protein", "carbs", "fat", "expected"),
    [
        ("skyr", 62, 11, 4, 0.2, True),
        ("skyr", 0, 11, 4, 0.2, False),
        ("oil", 901, 0, 0, 100, False),
        ("water", 10, 0, 0, 0, False),
        ("powder", 400, 60, 40, 10, False),
    ],
)
def test_is_plausible_limits(  # noqa: PLR0913
    name: str, kcal: float, protein: float, carbs: float, fat: float, expected: bool
) -> None:
    candidate = make_candidate("c", name, kcal, protein, carbs, fat)
    assert is_plausible(name, candidate) is expected


def test_is_plausible_requires_egg_name_for_egg_items() -> None:
    pancake = make_candidate("p", "Pancake mix", 350, 8, 5, 2)

    assert not is_plausible("eggs", pancake)
    assert not is_plausible("eggs", EGG_NOODLES)
    assert is_plausible("eggs", FREE_RANGE_EGGS)
