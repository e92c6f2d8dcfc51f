"""Nutrition domain models."""

import math
from dataclasses import dataclass

SOURCE_LOCAL = "local_products"
SOURCE_REGIONAL = "openfoodfacts_regional"
SOURCE_GLOBAL = "openfoodfacts_global"
SOURCE_WEB = "openfoodfacts_web"


def round1(value: float) -> float:
    """Round half-up to a single decimal."""
    return math.floor(value * 10 + 0.5) / 10


@dataclass(frozen=True)
class MacroProfile:
    """Macronutrient totals for a portion, meal or day."""

    kcal: float
    protein_g: float
    carbs_g: float
    fat_g: float


@dataclass(frozen=True)
class Provenance:
    """Where a nutrition value came from."""

    source_type: str | None
    label: str | None
    url: str | None
    rationale: str

    def to_dict(self) -> dict[str, object]:
        """Serialize for JSON storage."""
        return {
            "source_type": self.source_type,
            "label": self.label,
            "url": self.url,
            "rationale": self.rationale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> "Provenance":
        """Parse a stored provenance payload."""
        data = data or {}
        return cls(
            source_type=_optional_str(data.get("source_type")),
            label=_optional_str(data.get("label")),
            url=_optional_str(data.get("url")),
            rationale=str(data.get("rationale") or ""),
        )


@dataclass(frozen=True)
class NutritionCandidate:
    """Source-originated nutrition profile per 100g."""

    id: str
    name: str
    brand: str | None
    kcal_per_100g: float
    protein_per_100g: float
    carbs_per_100g: float
    fat_per_100g: float
    url: str | None
    source_type: str
    source_label: str


@dataclass(frozen=True)
class RankedCandidate:
    """Candidate with a ranking score and rationale."""

    candidate: NutritionCandidate
    score: float
    rationale: str


@dataclass(frozen=True)
class LocalProduct:
    """Row of the local product reference table."""

    id: int
    name: str
    aliases: str
    kcal_per_100g: float
    protein_per_100g: float
    carbs_per_100g: float
    fat_per_100g: float


def scale_from_per_100g(candidate: NutritionCandidate, grams: float) -> MacroProfile:
    """Scale per-100g values to a portion size."""
    factor = grams / 100
    return MacroProfile(
        kcal=round1(candidate.kcal_per_100g * factor),
        protein_g=round1(candidate.protein_per_100g * factor),
        carbs_g=round1(candidate.carbs_per_100g * factor),
        fat_g=round1(candidate.fat_per_100g * factor),
    )


def kcal_from_macros(protein_g: float, carbs_g: float, fat_g: float) -> float:
    """Derive calories with the 4/4/9 formula."""
    return round1(protein_g * 4 + carbs_g * 4 + fat_g * 9)


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
