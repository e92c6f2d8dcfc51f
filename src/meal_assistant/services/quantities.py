"""Quantity normalization into grams."""

from dataclasses import replace

from meal_assistant.domain.meals import MealItemMention

EGG_GRAMS_BY_SIZE = {"small": 40, "medium": 50, "large": 60}
DEFAULT_EGG_SIZE = "medium"

_UNIT_SYNONYMS = {
    "g": "g",
    "gram": "g",
    "grams": "g",
    "kg": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "egg": "piece",
    "eggs": "piece",
    "piece": "piece",
    "pieces": "piece",
    "pack": "pack",
    "packs": "pack",
    "package": "pack",
    "pkg": "pack",
}


def normalize_unit(unit: str | None) -> str | None:
    """Map a unit string onto its canonical form."""
    if unit is None:
        return None
    normalized = unit.strip().lower()
    if not normalized:
        return None
    return _UNIT_SYNONYMS.get(normalized, normalized)


def normalize_item_quantity(item: MealItemMention) -> MealItemMention:
    """Fill amount_grams from quantity, unit and size where a rule applies."""
    unit = normalize_unit(item.unit)
    normalized = replace(item, unit=unit)
    if item.amount_grams is not None or item.quantity is None:
        return normalized

    if unit == "g":
        return replace(normalized, amount_grams=item.quantity)

    if unit == "kg":
        return replace(
            normalized,
            amount_grams=item.quantity * 1000,
            assumptions=(*item.assumptions, "Converted kilograms to grams."),
        )

    if unit in {"piece", None} and "egg" in item.name.lower():
        size = item.size if item.size in EGG_GRAMS_BY_SIZE else DEFAULT_EGG_SIZE
        grams_per_egg = EGG_GRAMS_BY_SIZE[size]
        grams = item.quantity * grams_per_egg
        return replace(
            normalized,
            size=size,
            amount_grams=grams,
            assumptions=(
                *item.assumptions,
                f"Converted {format_number(item.quantity)} {size} egg(s) to "
                f"{format_number(grams)}g ({grams_per_egg}g each).",
            ),
        )

    return normalized


def item_display_label(item: MealItemMention) -> str:
    """Return the user-facing label for a mention."""
    if item.display_name and item.display_name.strip():
        return item.display_name.strip()

    unit = normalize_unit(item.unit)
    if item.quantity is not None and unit:
        quantity = format_number(item.quantity)
        if unit == "piece" and "egg" in item.name.lower():
            return f"{quantity} eggs"
        unit_label = "pieces" if unit == "piece" else unit
        return f"{quantity} {unit_label} {item.name}".strip()

    if item.amount_grams is not None:
        return f"{format_number(item.amount_grams)}g {item.name}".strip()

    return item.name


def format_number(value: float) -> str:
    """Format a number without a trailing .0 for whole values."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)
