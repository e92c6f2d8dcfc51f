"""Domain models for meal logging."""

from dataclasses import dataclass, field
from datetime import datetime

from meal_assistant.domain.nutrition import MacroProfile, Provenance, round1

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5

LABEL_SCORES = {"high": 0.9, "medium": 0.65, "low": 0.35}


def confidence_label(score: float) -> str:
    """Convert a confidence score into a coarse label."""
    if score >= HIGH_CONFIDENCE:
        return "high"
    if score >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def confidence_score(label: str) -> float:
    """Convert a coarse confidence label into a score."""
    return LABEL_SCORES.get(label.lower(), LABEL_SCORES["low"])


@dataclass(frozen=True)
class MealItemMention:
    """A food reference extracted from one utterance."""

    name: str
    display_name: str | None = None
    quantity: float | None = None
    unit: str | None = None
    size: str | None = None
    amount_grams: float | None = None
    kcal: float | None = None
    protein_g: float | None = None
    carbs_g: float | None = None
    fat_g: float | None = None
    assumptions: tuple[str, ...] = ()

    def has_any_nutrition(self) -> bool:
        """Return whether the user supplied any nutrition value."""
        return any(
            value is not None
            for value in (self.kcal, self.protein_g, self.carbs_g, self.fat_g)
        )


@dataclass(frozen=True)
class ResolvedItem:
    """A mention with nutrition values and provenance attached."""

    name: str
    display_name: str
    amount_grams: float | None
    kcal: float | None
    protein_g: float | None
    carbs_g: float | None
    fat_g: float | None
    source: str
    confidence: float
    assumptions: tuple[str, ...]
    provenance: Provenance


@dataclass(frozen=True)
class LocalNow:
    """Current calendar date and time in the reference timezone."""

    date: str
    time: str
    timezone: str


@dataclass(frozen=True)
class MealRecord:
    """Persisted meal aggregate."""

    id: int
    raw_text: str
    label: str
    totals: MacroProfile
    confidence: float
    local_date: str
    local_time: str
    timezone: str
    assumptions: tuple[str, ...] = ()


@dataclass(frozen=True)
class MealEntryRecord:
    """Persisted meal entry row."""

    id: int
    meal_id: int | None
    raw_text: str
    item: str
    amount_grams: float | None
    kcal: float | None
    protein_g: float | None
    carbs_g: float | None
    fat_g: float | None
    source: str
    confidence: float
    assumptions: tuple[str, ...]
    provenance: Provenance
    local_date: str
    local_time: str
    timezone: str
    agent_model: str | None = None
    deleted_at: datetime | None = None

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-compatible snapshot for revisions."""
        return {
            "id": self.id,
            "meal_id": self.meal_id,
            "item": self.item,
            "amount_grams": self.amount_grams,
            "kcal": self.kcal,
            "protein_g": self.protein_g,
            "carbs_g": self.carbs_g,
            "fat_g": self.fat_g,
            "source": self.source,
            "confidence": self.confidence,
            "assumptions": list(self.assumptions),
            "provenance": self.provenance.to_dict(),
        }


@dataclass(frozen=True)
class EntryValues:
    """Values written to a meal entry on insert or update."""

    item: str
    amount_grams: float | None
    kcal: float | None
    protein_g: float | None
    carbs_g: float | None
    fat_g: float | None
    source: str
    confidence: float
    assumptions: tuple[str, ...]
    provenance: Provenance
    raw_text: str
    agent_model: str | None = None

    @classmethod
    def from_resolved(
        cls, item: ResolvedItem, raw_text: str, agent_model: str | None
    ) -> "EntryValues":
        """Build entry values from a resolved item."""
        return cls(
            item=item.display_name,
            amount_grams=item.amount_grams,
            kcal=item.kcal,
            protein_g=item.protein_g,
            carbs_g=item.carbs_g,
            fat_g=item.fat_g,
            source=item.source,
            confidence=item.confidence,
            assumptions=item.assumptions,
            provenance=item.provenance,
            raw_text=raw_text,
            agent_model=agent_model,
        )

    @classmethod
    def from_record(cls, record: "MealEntryRecord") -> "EntryValues":
        """Build entry values from a stored entry."""
        return cls(
            item=record.item,
            amount_grams=record.amount_grams,
            kcal=record.kcal,
            protein_g=record.protein_g,
            carbs_g=record.carbs_g,
            fat_g=record.fat_g,
            source=record.source,
            confidence=record.confidence,
            assumptions=record.assumptions,
            provenance=record.provenance,
            raw_text=record.raw_text,
            agent_model=record.agent_model,
        )


@dataclass(frozen=True)
class EntryRevision:
    """Append-only audit record of an entry patch."""

    entry_id: int
    actor: str
    reason: str
    before: dict[str, object]
    after: dict[str, object]


@dataclass(frozen=True)
class MealListing:
    """Short meal description for listings."""

    id: int
    label: str
    local_time: str
    kcal: float | None


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of applying resolved items to a meal."""

    meal_id: int
    entry_ids: list[int]
    totals: MacroProfile
    revisions: int = 0


@dataclass(frozen=True)
class DaySummary:
    """Totals and entries for one calendar day."""

    date: str
    totals: MacroProfile
    entries: list[MealEntryRecord] = field(default_factory=list)


def sum_totals(
    values: list[MealEntryRecord] | list[ResolvedItem],
) -> MacroProfile:
    """Sum nutrition values, treating missing values as zero."""
    kcal = protein = carbs = fat = 0.0
    for value in values:
        kcal += value.kcal or 0.0
        protein += value.protein_g or 0.0
        carbs += value.carbs_g or 0.0
        fat += value.fat_g or 0.0
    return MacroProfile(
        kcal=round1(kcal),
        protein_g=round1(protein),
        carbs_g=round1(carbs),
        fat_g=round1(fat),
    )


def infer_meal_label(raw_text: str) -> str:
    """Infer a meal label from the first matching keyword."""
    lower = raw_text.lower()
    for keyword in ("breakfast", "lunch", "dinner", "snack"):
        if keyword in lower:
            return keyword.capitalize()
    return "Meal"
