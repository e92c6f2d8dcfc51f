"""Tests for meal log service."""

from datetime import UTC, datetime

import pytest

from meal_assistant.domain.meals import EntryValues, LocalNow
from meal_assistant.services.meals import (
    AGENT_PATCH_REASON,
    MANUAL_PATCH_REASON,
    MATCH_THRESHOLD,
    MealLogService,
    best_match,
    overlap_score,
)
from tests.conftest import (
    TEST_DATE,
    InMemoryMealRepository,
    make_resolved,
)

NOW = LocalNow(date=TEST_DATE, time="12:30:00", timezone="Europe/Berlin")
DELETED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _service(repository: InMemoryMealRepository) -> MealLogService:
    return MealLogService(repository, clock=lambda: DELETED_AT)


def _lunch(service: MealLogService) -> int:
    created = service.create_meal(
        "lunch: chicken breast and rice",
        [
            make_resolved("chicken breast", 330, 62, 0, 7.2, amount_grams=200),
            make_resolved("rice", 196.5, 4, 42, 0.5, amount_grams=150),
        ],
        NOW,
        confidence=0.9,
        agent_model="gpt-test",
    )
    return created.meal_id


def test_create_meal_stores_entries_and_totals() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)

    created = service.create_meal(
        "Lunch: chicken breast and rice",
        [
            make_resolved("chicken breast", 330, 62, 0, 7.2),
            make_resolved("rice", 196.5, 4, 42, 0.5),
            make_resolved("mystery sauce", None, None, None, None),
        ],
        NOW,
        confidence=0.7,
    )

    meal = repository.meals[created.meal_id]
    assert meal.label == "Lunch"
    assert meal.totals.kcal == 526.5
    assert meal.totals.fat_g == 7.7
    assert created.totals == meal.totals
    assert created.entry_ids == [1, 2, 3]
    assert {entry.meal_id for entry in repository.entries.values()} == {1}
    assert repository.entries[1].local_time == "12:30:00"


def test_overlap_score_boundaries() -> None:
    assert overlap_score("chicken thigh", "200g chicken breast") == 0.5
    assert overlap_score("grilled chicken thigh", "chicken breast") == pytest.approx(
        1 / 3
    )
    assert overlap_score("grilled chicken thigh", "chicken breast") < MATCH_THRESHOLD
    assert overlap_score("!", "chicken") == 0.0


def test_best_match_keeps_first_on_ties() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)
    entries = repository.list_entries(meal_id)

    match, score = best_match("chicken rice", entries)
    no_match, zero = best_match("salad", entries)

    assert match is not None
    assert match.item == "chicken breast"
    assert score == 0.5
    assert no_match is None
    assert zero == 0.0


def test_reconcile_patches_matching_entry_with_one_revision() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)

    result = service.reconcile_entries(
        repository.meals[meal_id],
        [make_resolved("chicken thigh", 412.5, 77.5, 0, 9, amount_grams=250)],
        replace_all=False,
        raw_text="actually chicken thigh",
    )

    assert result.entry_ids == [1]
    assert result.revisions == 1
    assert result.totals.kcal == 609
    assert repository.meals[meal_id].totals.kcal == 609
    assert repository.entries[1].item == "chicken thigh"
    assert repository.entries[2].item == "rice"
    revision = repository.revisions[0]
    assert revision.entry_id == 1
    assert revision.actor == "agent"
    assert revision.reason == AGENT_PATCH_REASON
    assert revision.before["kcal"] == 330
    assert revision.after["kcal"] == 412.5


def test_reconcile_below_threshold_adds_entry() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)

    result = service.reconcile_entries(
        repository.meals[meal_id],
        [make_resolved("grilled chicken thigh", 100)],
        replace_all=False,
        raw_text="also grilled chicken thigh",
    )

    assert result.revisions == 0
    assert result.entry_ids == [3]
    assert repository.revisions == []
    assert len(repository.list_entries(meal_id)) == 3
    assert result.totals.kcal == 626.5
    new_entry = repository.entries[3]
    assert new_entry.meal_id == meal_id
    assert new_entry.local_date == TEST_DATE


def test_reconcile_replace_all_soft_deletes_previous_entries() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)

    result = service.reconcile_entries(
        repository.meals[meal_id],
        [make_resolved("chicken breast", 100)],
        replace_all=True,
        raw_text="replace with 100 kcal chicken breast",
    )

    assert result.revisions == 0
    assert [entry.id for entry in repository.list_entries(meal_id)] == [3]
    assert repository.entries[1].deleted_at == DELETED_AT
    assert repository.meals[meal_id].totals.kcal == 100


def test_delete_single_meal_zeroes_totals() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)

    deleted = service.delete_meals(meal_id, TEST_DATE, delete_all=False)

    assert deleted == [meal_id]
    assert repository.list_entries(meal_id) == []
    assert repository.meals[meal_id].totals.kcal == 0
    assert service.summarize_day(TEST_DATE).totals.kcal == 0


def test_delete_unknown_meal_is_noop() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    _lunch(service)

    assert service.delete_meals(99, TEST_DATE, delete_all=False) == []
    assert service.delete_meals(None, TEST_DATE, delete_all=False) == []
    assert len(repository.list_entries_for_date(TEST_DATE)) == 2


def test_delete_all_only_touches_the_given_day() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    first = _lunch(service)
    second = _lunch(service)
    yesterday = service.create_meal(
        "snack",
        [make_resolved("skyr", 62)],
        LocalNow(date="2026-02-28", time="20:00:00", timezone="Europe/Berlin"),
        confidence=0.9,
    ).meal_id

    deleted = service.delete_meals(None, TEST_DATE, delete_all=True)

    assert sorted(deleted) == [first, second]
    assert service.summarize_day(TEST_DATE).entries == []
    assert service.summarize_day("2026-02-28").totals.kcal == 62
    assert repository.meals[yesterday].totals.kcal == 62


def test_latest_meal_and_listing() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    _lunch(service)
    second = _lunch(service)

    latest = service.latest_meal(TEST_DATE)

    assert latest is not None
    assert latest.id == second
    assert [meal.id for meal in service.list_meals(TEST_DATE)] == [second, 1]
    assert service.latest_meal("2026-01-01") is None


def test_summarize_day_includes_standalone_entries() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    _lunch(service)
    entry = repository.entries[1]
    service.create_standalone_entry(
        EntryValues.from_record(entry), LocalNow(TEST_DATE, "08:00:00", "UTC")
    )

    summary = service.summarize_day(TEST_DATE)

    assert summary.totals.kcal == 856.5
    assert summary.entries[0].meal_id is None
    assert summary.entries[0].local_time == "08:00:00"


def test_update_entry_applies_manual_correction() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    meal_id = _lunch(service)

    updated = service.update_entry(
        2, {"kcal": 150.0, "item": "jasmine rice", "assumptions": ["Weighed."]}
    )

    assert updated is not None
    assert updated.kcal == 150
    assert updated.item == "jasmine rice"
    assert updated.source == "user"
    assert updated.confidence == 0.95
    assert updated.assumptions == ("Weighed.",)
    assert updated.protein_g == 4
    assert repository.meals[meal_id].totals.kcal == 480
    revision = repository.revisions[-1]
    assert revision.actor == "user"
    assert revision.reason == MANUAL_PATCH_REASON


def test_update_entry_validates_fields() -> None:
    repository = InMemoryMealRepository()
    service = _service(repository)
    _lunch(service)

    with pytest.raises(ValueError, match="Unsupported entry fields: source"):
        service.update_entry(1, {"source": "lookup"})
    with pytest.raises(ValueError):
        service.update_entry(1, {})
    assert service.update_entry(42, {"kcal": 10.0}) is None
