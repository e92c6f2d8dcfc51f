"""Meal and entry persistence workflows."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from meal_assistant.domain.meals import (
    DaySummary,
    EntryRevision,
    EntryValues,
    LocalNow,
    MealEntryRecord,
    MealListing,
    MealRecord,
    ReconcileResult,
    ResolvedItem,
    infer_meal_label,
    sum_totals,
)
from meal_assistant.domain.nutrition import MacroProfile
from meal_assistant.services.cache import utc_now
from meal_assistant.services.nutrition import tokenize

_logger = logging.getLogger(__name__)

# Tunable: minimum share of item tokens an existing entry must contain.
MATCH_THRESHOLD = 0.34
MAX_LISTED_MEALS = 30
MANUAL_CONFIDENCE = 0.95

AGENT_ACTOR = "agent"
USER_ACTOR = "user"
AGENT_PATCH_REASON = "Patch item from conversational correction"
MANUAL_PATCH_REASON = "Manual entry correction"

EDITABLE_FIELDS = frozenset(
    {"item", "amount_grams", "kcal", "protein_g", "carbs_g", "fat_g", "assumptions"}
)

ZERO_TOTALS = MacroProfile(kcal=0.0, protein_g=0.0, carbs_g=0.0, fat_g=0.0)


class MealRepository(Protocol):
    """Persistence interface for meals, entries and revisions."""

    def create_meal(  # noqa: PLR0913
        self,
        raw_text: str,
        label: str,
        totals: MacroProfile,
        confidence: float,
        assumptions: tuple[str, ...],
        now: LocalNow,
    ) -> int:
        """Create a meal and return its id."""

    def get_meal(self, meal_id: int) -> MealRecord | None:
        """Return a meal by id."""

    def list_meals(self, local_date: str, limit: int) -> list[MealListing]:
        """Return meals of a day, latest first."""

    def update_meal_totals(self, meal_ids: list[int], totals: MacroProfile) -> None:
        """Overwrite cached totals for meals."""

    def create_entry(
        self,
        meal_id: int | None,
        values: EntryValues,
        local_date: str,
        local_time: str,
        timezone: str,
    ) -> int:
        """Create an entry and return its id."""

    def get_entry(self, entry_id: int) -> MealEntryRecord | None:
        """Return a non-deleted entry by id."""

    def list_entries(self, meal_id: int) -> list[MealEntryRecord]:
        """Return non-deleted entries of a meal ordered by id."""

    def list_entries_for_date(self, local_date: str) -> list[MealEntryRecord]:
        """Return non-deleted entries of a day ordered by time and id."""

    def update_entry(self, entry_id: int, values: EntryValues) -> MealEntryRecord:
        """Overwrite entry values and return the stored row."""

    def soft_delete_entries(self, meal_ids: list[int], deleted_at: datetime) -> None:
        """Mark all non-deleted entries of the meals as deleted."""

    def create_revision(self, revision: EntryRevision) -> None:
        """Append an entry revision."""


def overlap_score(item_name: str, entry_name: str) -> float:
    """Share of the item's tokens that also appear in the entry name."""
    item_tokens = set(tokenize(item_name))
    entry_tokens = set(tokenize(entry_name))
    if not item_tokens or not entry_tokens:
        return 0.0
    return len(item_tokens & entry_tokens) / len(item_tokens)


def best_match(
    item_name: str, entries: list[MealEntryRecord]
) -> tuple[MealEntryRecord | None, float]:
    """Return the highest scoring entry, keeping the first one on ties."""
    best: MealEntryRecord | None = None
    best_score = 0.0
    for entry in entries:
        score = overlap_score(item_name, entry.item)
        if score > best_score:
            best = entry
            best_score = score
    return best, best_score


@dataclass
class MealLogService:
    """Service that creates, reconciles and deletes meals and entries."""

    repository: MealRepository
    clock: Callable[[], datetime] = utc_now

    def create_meal(
        self,
        raw_text: str,
        items: list[ResolvedItem],
        now: LocalNow,
        *,
        confidence: float,
        agent_model: str | None = None,
    ) -> ReconcileResult:
        """Persist a new meal with one entry per resolved item."""
        totals = sum_totals(items)
        assumptions = tuple(
            assumption for item in items for assumption in item.assumptions
        )
        meal_id = self.repository.create_meal(
            raw_text=raw_text,
            label=infer_meal_label(raw_text),
            totals=totals,
            confidence=confidence,
            assumptions=assumptions,
            now=now,
        )
        entry_ids = [
            self.repository.create_entry(
                meal_id,
                EntryValues.from_resolved(item, raw_text, agent_model),
                now.date,
                now.time,
                now.timezone,
            )
            for item in items
        ]
        _logger.info("Meal created: meal_id=%s entries=%s", meal_id, len(entry_ids))
        return ReconcileResult(meal_id=meal_id, entry_ids=entry_ids, totals=totals)

    def reconcile_entries(
        self,
        meal: MealRecord,
        items: list[ResolvedItem],
        *,
        replace_all: bool,
        raw_text: str,
        agent_model: str | None = None,
    ) -> ReconcileResult:
        """Patch matching entries or add new ones, then refresh meal totals."""
        existing = self.repository.list_entries(meal.id)
        touched: list[int] = []
        revisions = 0

        if replace_all:
            self.repository.soft_delete_entries([meal.id], self.clock())
            existing = []

        for item in items:
            values = EntryValues.from_resolved(item, raw_text, agent_model)
            match, score = best_match(item.name, existing)
            if match is not None and score >= MATCH_THRESHOLD:
                updated = self.repository.update_entry(match.id, values)
                self.repository.create_revision(
                    EntryRevision(
                        entry_id=match.id,
                        actor=AGENT_ACTOR,
                        reason=AGENT_PATCH_REASON,
                        before=match.snapshot(),
                        after=updated.snapshot(),
                    )
                )
                revisions += 1
                touched.append(match.id)
                continue

            touched.append(
                self.repository.create_entry(
                    meal.id, values, meal.local_date, meal.local_time, meal.timezone
                )
            )

        totals = self.refresh_totals(meal.id)
        _logger.info(
            "Meal reconciled: meal_id=%s touched=%s revisions=%s replace=%s",
            meal.id,
            len(touched),
            revisions,
            replace_all,
        )
        return ReconcileResult(
            meal_id=meal.id, entry_ids=touched, totals=totals, revisions=revisions
        )

    def refresh_totals(self, meal_id: int) -> MacroProfile:
        """Recompute meal totals from its non-deleted entries."""
        totals = sum_totals(self.repository.list_entries(meal_id))
        self.repository.update_meal_totals([meal_id], totals)
        return totals

    def get_meal(self, meal_id: int) -> MealRecord | None:
        """Return a meal by id."""
        return self.repository.get_meal(meal_id)

    def latest_meal(self, local_date: str) -> MealRecord | None:
        """Return the most recent meal of a day."""
        meals = self.repository.list_meals(local_date, 1)
        if not meals:
            return None
        return self.repository.get_meal(meals[0].id)

    def list_meals(self, local_date: str) -> list[MealListing]:
        """Return up to 30 meals of a day, latest first."""
        return self.repository.list_meals(local_date, MAX_LISTED_MEALS)

    def delete_meals(
        self, meal_id: int | None, local_date: str, *, delete_all: bool
    ) -> list[int]:
        """Soft-delete entries of one meal or every meal of a day."""
        if delete_all:
            meal_ids = [
                meal.id
                for meal in self.repository.list_meals(local_date, MAX_LISTED_MEALS)
            ]
        elif meal_id is not None and self.repository.get_meal(meal_id) is not None:
            meal_ids = [meal_id]
        else:
            meal_ids = []

        if not meal_ids:
            return []
        self.repository.soft_delete_entries(meal_ids, self.clock())
        self.repository.update_meal_totals(meal_ids, ZERO_TOTALS)
        _logger.info("Meals deleted: meal_ids=%s", meal_ids)
        return meal_ids

    def summarize_day(self, local_date: str) -> DaySummary:
        """Return rounded totals and entries for a day."""
        entries = self.repository.list_entries_for_date(local_date)
        return DaySummary(date=local_date, totals=sum_totals(entries), entries=entries)

    def update_entry(
        self, entry_id: int, changes: dict[str, object]
    ) -> MealEntryRecord | None:
        """Apply a manual correction to an entry and refresh meal totals."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported entry fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValueError("No valid fields provided for update.")

        entry = self.repository.get_entry(entry_id)
        if entry is None:
            return None

        updates = dict(changes)
        if "assumptions" in updates:
            updates["assumptions"] = tuple(updates["assumptions"])
        values = replace(
            EntryValues.from_record(entry),
            **updates,
            source="user",
            confidence=MANUAL_CONFIDENCE,
        )
        updated = self.repository.update_entry(entry_id, values)
        self.repository.create_revision(
            EntryRevision(
                entry_id=entry_id,
                actor=USER_ACTOR,
                reason=MANUAL_PATCH_REASON,
                before=entry.snapshot(),
                after=updated.snapshot(),
            )
        )
        if updated.meal_id is not None:
            self.refresh_totals(updated.meal_id)
        return updated

    def create_standalone_entry(self, values: EntryValues, now: LocalNow) -> int:
        """Persist an entry that is not attached to a meal."""
        return self.repository.create_entry(
            None, values, now.date, now.time, now.timezone
        )
