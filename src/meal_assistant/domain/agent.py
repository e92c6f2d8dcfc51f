"""Result models for agent turns."""

from dataclasses import dataclass, field

from meal_assistant.domain.meals import MealListing
from meal_assistant.domain.nutrition import MacroProfile


@dataclass(frozen=True)
class ItemConfidence:
    """Confidence score for a single item."""

    item: str
    score: float


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Overall and per-item confidence."""

    overall: float
    items: list[ItemConfidence] = field(default_factory=list)


@dataclass(frozen=True)
class Entities:
    """Identifiers affected by a turn."""

    meal_ids: list[int] = field(default_factory=list)
    entry_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class AgentEnvelope:
    """Machine-readable response envelope."""

    ok: bool
    message: str
    actions: list[str]
    entities: Entities
    confidence: ConfidenceBreakdown
    requires_input: str | None = None


@dataclass(frozen=True)
class DraftItem:
    """Resolved item as shown in a normalized draft."""

    name: str
    display_name: str | None
    amount_grams: float | None
    kcal: float | None
    protein_g: float | None
    carbs_g: float | None
    fat_g: float | None
    assumptions: list[str]
    source: str


@dataclass(frozen=True)
class NormalizedDraft:
    """Normalized view of what was logged in a turn."""

    raw_text: str
    items: list[DraftItem]
    assumptions: list[str]
    confidence: str
    intent: str = "log_meal"


@dataclass(frozen=True)
class MealSummary:
    """Human-readable summary and totals of logged items."""

    text: str
    totals: MacroProfile


@dataclass(frozen=True)
class RunResult:
    """Outcome of processing one conversational turn."""

    envelope: AgentEnvelope
    action: str
    active_meal_id: int | None
    normalized_draft: NormalizedDraft | None = None
    meal_summary: MealSummary | None = None
    meals: list[MealListing] | None = None
    saved_meal_id: int | None = None
    saved_entry_ids: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return whether the turn succeeded."""
        return self.envelope.ok

    @property
    def message(self) -> str:
        """Return the assistant-facing message."""
        return self.envelope.message
