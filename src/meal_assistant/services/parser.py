"""Deterministic parsing of meal text without network access."""

import re
from dataclasses import dataclass

from meal_assistant.domain.nutrition import kcal_from_macros

UNKNOWN_MEAL = "unknown meal"
MACRO_ESTIMATE_ASSUMPTION = (
    "Calories estimated from macros with deterministic 4/4/9 formula."
)

_NUMBER = r"(\d+(?:[.,]\d+)?)"
_GRAMS_RE = re.compile(rf"{_NUMBER}\s?(?:g|gram|grams)\b", re.IGNORECASE)
_KCAL_RE = re.compile(rf"{_NUMBER}\s?(?:kcal|calories|cal)\b", re.IGNORECASE)
_PROTEIN_RE = re.compile(rf"\b(?:protein|p)\s?{_NUMBER}\s?g\b", re.IGNORECASE)
_CARBS_RE = re.compile(
    rf"\b(?:carbs|carbohydrates|c)\s?{_NUMBER}\s?g\b", re.IGNORECASE
)
_FAT_RE = re.compile(rf"\b(?:fat|f)\s?{_NUMBER}\s?g\b", re.IGNORECASE)
_UNIT_TOKEN_RE = re.compile(
    r"\b\d+(?:[.,]\d+)?\s?(?:g|gram|grams|kcal|calories|cal|protein|carbs|fat)\b"
)

_STOP_WORDS = frozenset(
    {
        "i",
        "ate",
        "had",
        "for",
        "breakfast",
        "lunch",
        "dinner",
        "snack",
        "with",
        "and",
        "plus",
        "a",
        "an",
        "the",
        "of",
        "my",
        "protein",
        "carbs",
        "carbohydrates",
        "fat",
    }
)

MAX_ITEM_WORDS = 4
MEDIUM_MAX_ASSUMPTIONS = 2


@dataclass(frozen=True)
class MealDraft:
    """Single-item draft parsed from raw text."""

    raw_text: str
    item: str
    amount_grams: float | None
    kcal: float | None
    protein_g: float | None
    carbs_g: float | None
    fat_g: float | None
    assumptions: tuple[str, ...]
    confidence: str


def parse_log_meal(text: str) -> MealDraft:
    """Extract an item name, portion and nutrition values from text."""
    normalized = " ".join(text.split())
    assumptions: list[str] = []

    protein_g = _capture(_PROTEIN_RE, normalized)
    carbs_g = _capture(_CARBS_RE, normalized)
    fat_g = _capture(_FAT_RE, normalized)
    without_macros = _strip_macros(normalized)
    amount_grams = _capture(_GRAMS_RE, without_macros)
    kcal = _capture(_KCAL_RE, without_macros)
    item = infer_item_name(normalized)

    if item == UNKNOWN_MEAL:
        assumptions.append("Could not identify food item; kept generic meal label.")
    if amount_grams is None:
        assumptions.append("No amount in grams provided.")

    has_all_macros = None not in (protein_g, carbs_g, fat_g)
    if kcal is None and has_all_macros:
        kcal = kcal_from_macros(protein_g, carbs_g, fat_g)
        assumptions.append(MACRO_ESTIMATE_ASSUMPTION)
    elif kcal is None:
        assumptions.append("No calories provided.")

    if not has_all_macros:
        assumptions.append("Missing one or more macros (protein/carbs/fat).")

    return MealDraft(
        raw_text=normalized,
        item=item,
        amount_grams=amount_grams,
        kcal=kcal,
        protein_g=protein_g,
        carbs_g=carbs_g,
        fat_g=fat_g,
        assumptions=tuple(assumptions),
        confidence=confidence_from_assumptions(len(assumptions)),
    )


def infer_item_name(text: str) -> str:
    """Infer a short item name from the words left after removing amounts."""
    cleaned = _strip_macros(text.lower())
    cleaned = _UNIT_TOKEN_RE.sub(" ", cleaned)
    cleaned = re.sub(r"[^\w\s]", " ", cleaned)
    words = [
        word
        for word in cleaned.split()
        if len(word) > 1 and word not in _STOP_WORDS
    ]
    if not words:
        return UNKNOWN_MEAL
    return " ".join(words[:MAX_ITEM_WORDS])


def confidence_from_assumptions(count: int) -> str:
    """Map the number of assumptions onto a confidence label."""
    if count == 0:
        return "high"
    if count <= MEDIUM_MAX_ASSUMPTIONS:
        return "medium"
    return "low"


def _capture(pattern: re.Pattern[str], text: str) -> float | None:
    match = pattern.search(text)
    if match is None:
        return None
    return float(match.group(1).replace(",", "."))


def _strip_macros(text: str) -> str:
    for pattern in (_PROTEIN_RE, _CARBS_RE, _FAT_RE):
        text = pattern.sub(" ", text)
    return text