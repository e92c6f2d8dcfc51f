"""Supabase repository for meals, entries and revisions."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from meal_assistant.domain.meals import (
    EntryRevision,
    EntryValues,
    LocalNow,
    MealEntryRecord,
    MealListing,
    MealRecord,
    confidence_label,
)
from meal_assistant.domain.nutrition import MacroProfile, Provenance
from meal_assistant.services.meals import MealRepository

_MEAL_COLUMNS = (
    "id, raw_text, label, kcal, protein_g, carbs_g, fat_g, confidence, "
    "assumptions_json, local_date, local_time, timezone"
)
_ENTRY_COLUMNS = (
    "id, meal_id, raw_text, item, amount_grams, kcal, protein_g, carbs_g, fat_g, "
    "source, confidence, assumptions_json, provenance_json, agent_model, "
    "local_date, local_time, timezone, deleted_at"
)


@dataclass
class SupabaseMealRepository(MealRepository):
    """Supabase implementation for meals and entries."""

    client: Client

    def create_meal(  # noqa: PLR0913
        self,
        raw_text: str,
        label: str,
        totals: MacroProfile,
        confidence: float,
        assumptions: tuple[str, ...],
        now: LocalNow,
    ) -> int:
        """Create a meal row and return its id."""
        response = (
            self.client.table("meals")
            .insert(
                {
                    "raw_text": raw_text,
                    "label": label,
                    "kcal": totals.kcal,
                    "protein_g": totals.protein_g,
                    "carbs_g": totals.carbs_g,
                    "fat_g": totals.fat_g,
                    "confidence": confidence,
                    "confidence_label": confidence_label(confidence),
                    "assumptions_json": list(assumptions),
                    "local_date": now.date,
                    "local_time": now.time,
                    "timezone": now.timezone,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create meal")
        return int(response.data[0]["id"])

    def get_meal(self, meal_id: int) -> MealRecord | None:
        """Return a meal row by id."""
        response = (
            self.client.table("meals")
            .select(_MEAL_COLUMNS)
            .eq("id", meal_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_meal(response.data[0])

    def list_meals(self, local_date: str, limit: int) -> list[MealListing]:
        """Return meals of a day, latest first."""
        response = (
            self.client.table("meals")
            .select("id, label, local_time, kcal")
            .eq("local_date", local_date)
            .order("local_time", desc=True)
            .order("id", desc=True)
            .limit(limit)
            .execute()
        )
        return [
            MealListing(
                id=int(row["id"]),
                label=row["label"],
                local_time=row["local_time"],
                kcal=_optional_float(row.get("kcal")),
            )
            for row in response.data or []
        ]

    def update_meal_totals(self, meal_ids: list[int], totals: MacroProfile) -> None:
        """Overwrite cached totals for meals."""
        self.client.table("meals").update(
            {
                "kcal": totals.kcal,
                "protein_g": totals.protein_g,
                "carbs_g": totals.carbs_g,
                "fat_g": totals.fat_g,
            }
        ).in_("id", meal_ids).execute()

    def create_entry(
        self,
        meal_id: int | None,
        values: EntryValues,
        local_date: str,
        local_time: str,
        timezone: str,
    ) -> int:
        """Create an entry row and return its id."""
        payload = _entry_payload(values)
        payload.update(
            {
                "meal_id": meal_id,
                "local_date": local_date,
                "local_time": local_time,
                "timezone": timezone,
            }
        )
        response = self.client.table("meal_entries").insert(payload).execute()
        if not response.data:
            raise RuntimeError("Failed to create meal entry")
        return int(response.data[0]["id"])

    def get_entry(self, entry_id: int) -> MealEntryRecord | None:
        """Return a non-deleted entry by id."""
        response = (
            self.client.table("meal_entries")
            .select(_ENTRY_COLUMNS)
            .eq("id", entry_id)
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_entry(response.data[0])

    def list_entries(self, meal_id: int) -> list[MealEntryRecord]:
        """Return non-deleted entries of a meal ordered by id."""
        response = (
            self.client.table("meal_entries")
            .select(_ENTRY_COLUMNS)
            .eq("meal_id", meal_id)
            .is_("deleted_at", "null")
            .order("id", desc=False)
            .execute()
        )
        return [_parse_entry(row) for row in response.data or []]

    def list_entries_for_date(self, local_date: str) -> list[MealEntryRecord]:
        """Return non-deleted entries of a day ordered by time and id."""
        response = (
            self.client.table("meal_entries")
            .select(_ENTRY_COLUMNS)
            .eq("local_date", local_date)
            .is_("deleted_at", "null")
            .order("local_time", desc=False)
            .order("id", desc=False)
            .execute()
        )
        return [_parse_entry(row) for row in response.data or []]

    def update_entry(self, entry_id: int, values: EntryValues) -> MealEntryRecord:
        """Overwrite entry values and return the stored row."""
        response = (
            self.client.table("meal_entries")
            .update(_entry_payload(values))
            .eq("id", entry_id)
            .execute()
        )
        if not response.data:
            raise RuntimeError(f"Failed to update meal entry {entry_id}")
        return _parse_entry(response.data[0])

    def soft_delete_entries(self, meal_ids: list[int], deleted_at: datetime) -> None:
        """Mark all non-deleted entries of the meals as deleted."""
        self.client.table("meal_entries").update(
            {"deleted_at": deleted_at.isoformat()}
        ).in_("meal_id", meal_ids).is_("deleted_at", "null").execute()

    def create_revision(self, revision: EntryRevision) -> None:
        """Append an entry revision row."""
        self.client.table("entry_revisions").insert(
            {
                "entry_id": revision.entry_id,
                "actor": revision.actor,
                "reason": revision.reason,
                "before_json": revision.before,
                "after_json": revision.after,
            }
        ).execute()


def _entry_payload(values: EntryValues) -> dict[str, object]:
    return {
        "raw_text": values.raw_text,
        "item": values.item,
        "amount_grams": values.amount_grams,
        "kcal": values.kcal,
        "protein_g": values.protein_g,
        "carbs_g": values.carbs_g,
        "fat_g": values.fat_g,
        "source": values.source,
        "confidence": values.confidence,
        "confidence_label": confidence_label(values.confidence),
        "assumptions_json": list(values.assumptions),
        "provenance_json": values.provenance.to_dict(),
        "agent_model": values.agent_model,
    }


def _parse_meal(row: dict[str, object]) -> MealRecord:
    return MealRecord(
        id=int(row["id"]),
        raw_text=str(row.get("raw_text") or ""),
        label=str(row.get("label") or "Meal"),
        totals=MacroProfile(
            kcal=float(row.get("kcal") or 0.0),
            protein_g=float(row.get("protein_g") or 0.0),
            carbs_g=float(row.get("carbs_g") or 0.0),
            fat_g=float(row.get("fat_g") or 0.0),
        ),
        confidence=float(row.get("confidence") or 0.0),
        local_date=str(row["local_date"]),
        local_time=str(row["local_time"]),
        timezone=str(row["timezone"]),
        assumptions=tuple(row.get("assumptions_json") or ()),
    )


def _parse_entry(row: dict[str, object]) -> MealEntryRecord:
    deleted_at = row.get("deleted_at")
    meal_id = row.get("meal_id")
    return MealEntryRecord(
        id=int(row["id"]),
        meal_id=int(meal_id) if meal_id is not None else None,
        raw_text=str(row.get("raw_text") or ""),
        item=str(row["item"]),
        amount_grams=_optional_float(row.get("amount_grams")),
        kcal=_optional_float(row.get("kcal")),
        protein_g=_optional_float(row.get("protein_g")),
        carbs_g=_optional_float(row.get("carbs_g")),
        fat_g=_optional_float(row.get("fat_g")),
        source=str(row.get("source") or "estimated"),
        confidence=float(row.get("confidence") or 0.0),
        assumptions=tuple(row.get("assumptions_json") or ()),
        provenance=Provenance.from_dict(row.get("provenance_json")),
        local_date=str(row["local_date"]),
        local_time=str(row["local_time"]),
        timezone=str(row["timezone"]),
        agent_model=row.get("agent_model"),
        deleted_at=datetime.fromisoformat(deleted_at) if deleted_at else None,
    )


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)
