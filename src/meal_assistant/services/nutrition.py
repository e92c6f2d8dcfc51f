"""Nutrition candidate resolution across local and OpenFoodFacts sources."""

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from meal_assistant.adapters.openfoodfacts_client import (
    OpenFoodFactsClient,
    product_page_url,
    search_page_url,
)
from meal_assistant.domain.nutrition import (
    SOURCE_GLOBAL,
    SOURCE_LOCAL,
    SOURCE_REGIONAL,
    SOURCE_WEB,
    LocalProduct,
    NutritionCandidate,
    RankedCandidate,
    round1,
)
from meal_assistant.services.cache import Cache

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

MAX_CANDIDATES = 20
MIN_RANKING_POOL = 8
NO_TOKEN_SCORE = 0.5

SOURCE_BONUS = {
    SOURCE_LOCAL: 0.15,
    SOURCE_REGIONAL: 0.12,
    SOURCE_GLOBAL: 0.08,
    SOURCE_WEB: 0.04,
}

_PRODUCT_LINK_RE = re.compile(
    r"https?://world\.openfoodfacts\.org/product/([A-Za-z0-9_-]+)"
)
_ENCODED_PRODUCT_LINK_RE = re.compile(
    r"world\.openfoodfacts\.org%2Fproduct%2F([A-Za-z0-9_-]+)"
)


class ProductRepository(Protocol):
    """Persistence interface for the local product reference table."""

    def search_products(self, query: str, limit: int) -> list[LocalProduct]:
        """Return local products whose name or aliases match the query."""


def tokenize(value: str) -> list[str]:
    """Split text into lowercase alphanumeric tokens longer than one char."""
    return [token for token in re.split(r"[^a-z0-9]+", value.lower()) if len(token) > 1]


@dataclass
class NutritionResolver:
    """Resolve food names to ranked nutrition candidates with caching."""

    client: OpenFoodFactsClient
    cache: Cache
    product_repository: ProductRepository | None = None
    base_url: str = "https://world.openfoodfacts.org"
    country_tag: str = "de"
    ttl_seconds: int = 300
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, repr=False)
    _lock_users: dict[str, int] = field(default_factory=dict, repr=False)

    async def resolve(self, item: str, limit: int = 8) -> list[NutritionCandidate]:
        """Return deduplicated candidates for an item, cached per name and limit."""
        normalized_limit = max(1, min(limit, MAX_CANDIDATES))
        cache_key = f"{item.lower().strip()}::{normalized_limit}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, tuple):
            return list(cached)

        lock = self._locks.setdefault(cache_key, asyncio.Lock())
        self._lock_users[cache_key] = self._lock_users.get(cache_key, 0) + 1
        try:
            async with lock:
                cached = self.cache.get(cache_key)
                if isinstance(cached, tuple):
                    return list(cached)
                results = await self._collect(item, normalized_limit)
                self.cache.set(
                    cache_key, tuple(results), ttl_seconds=self.ttl_seconds
                )
        finally:
            # Locks only live while some call for the key is in flight.
            self._lock_users[cache_key] -= 1
            if not self._lock_users[cache_key]:
                del self._lock_users[cache_key]
                del self._locks[cache_key]
        _logger.info(
            "Resolved candidates: item=%s limit=%s results=%s",
            item,
            normalized_limit,
            len(results),
        )
        return results

    async def rank(self, item: str, limit: int = 5) -> list[RankedCandidate]:
        """Rank candidates by token overlap plus a per-source bonus."""
        candidates = await self.resolve(item, max(limit, MIN_RANKING_POOL))
        item_tokens = set(tokenize(item))
        if not item_tokens:
            return [
                RankedCandidate(
                    candidate=candidate,
                    score=NO_TOKEN_SCORE,
                    rationale=(
                        "No strong tokens found in user phrase; "
                        "returned best available candidates."
                    ),
                )
                for candidate in candidates[:limit]
            ]

        ranked = [_score_candidate(candidate, item_tokens) for candidate in candidates]
        ranked.sort(key=lambda entry: entry.score, reverse=True)
        return ranked[:limit]

    async def _collect(self, item: str, limit: int) -> list[NutritionCandidate]:
        merged: dict[str, NutritionCandidate] = {}

        for candidate in self._local_candidates(item, limit):
            merged.setdefault(candidate.id, candidate)

        if len(merged) < limit:
            regional = await self._search(
                item,
                limit,
                country_tag=self.country_tag,
                source_type=SOURCE_REGIONAL,
                source_label=f"OpenFoodFacts {self.country_tag.upper()}",
            )
            _merge(merged, regional, limit)

        if len(merged) < limit:
            global_candidates = await self._search(
                item,
                limit,
                country_tag=None,
                source_type=SOURCE_GLOBAL,
                source_label="OpenFoodFacts Global",
            )
            _merge(merged, global_candidates, limit)

        if not merged:
            _merge(merged, await self._browse_web(item, limit), limit)

        return list(merged.values())[:limit]

    def _local_candidates(self, item: str, limit: int) -> list[NutritionCandidate]:
        if self.product_repository is None:
            return []
        try:
            products = self.product_repository.search_products(item, limit)
        except Exception as exc:
            _logger.warning("Local product search failed for %s: %s", item, exc)
            return []
        candidates = []
        for product in products:
            values = (
                product.kcal_per_100g,
                product.protein_per_100g,
                product.carbs_per_100g,
                product.fat_per_100g,
            )
            if not all(_is_finite(value) for value in values):
                continue
            candidates.append(
                NutritionCandidate(
                    id=f"local_{product.id}",
                    name=product.name,
                    brand=None,
                    kcal_per_100g=round1(product.kcal_per_100g),
                    protein_per_100g=round1(product.protein_per_100g),
                    carbs_per_100g=round1(product.carbs_per_100g),
                    fat_per_100g=round1(product.fat_per_100g),
                    url=None,
                    source_type=SOURCE_LOCAL,
                    source_label="Local products",
                )
            )
        return candidates

    async def _search(
        self,
        item: str,
        limit: int,
        *,
        country_tag: str | None,
        source_type: str,
        source_label: str,
    ) -> list[NutritionCandidate]:
        try:
            payload = await self._call_with_retry(
                lambda: self.client.search_products(item, limit, country_tag),
                action=f"search:{source_type}",
            )
        except Exception as exc:
            _logger.warning("OpenFoodFacts %s search failed: %s", source_type, exc)
            return []
        products = payload.get("products") or []
        return self._candidates_from_products(
            item, products, source_type, source_label, country_tag
        )

    async def _browse_web(self, item: str, limit: int) -> list[NutritionCandidate]:
        try:
            html = await self._call_with_retry(
                lambda: self.client.search_web(
                    f"{item} site:openfoodfacts.org/product"
                ),
                action="search_web",
            )
        except Exception as exc:
            _logger.warning("Web search failed for %s: %s", item, exc)
            return []
        codes = extract_product_codes(html)[:limit]
        if not codes:
            return []
        products = await asyncio.gather(*(self._fetch_product(code) for code in codes))
        hydrated = [product for product in products if product is not None]
        return self._candidates_from_products(
            item, hydrated, SOURCE_WEB, "OpenFoodFacts (Web Browse)", None
        )

    async def _fetch_product(self, code: str) -> dict[str, object] | None:
        try:
            return await self.client.get_product(code)
        except Exception as exc:
            _logger.warning("OpenFoodFacts product %s failed: %s", code, exc)
            return None

    def _candidates_from_products(
        self,
        item: str,
        products: list[dict[str, object]],
        source_type: str,
        source_label: str,
        country_tag: str | None,
    ) -> list[NutritionCandidate]:
        candidates = []
        for index, product in enumerate(products):
            nutriments = product.get("nutriments")
            if not isinstance(nutriments, dict):
                continue
            kcal = _to_float(
                nutriments.get("energy-kcal_100g", nutriments.get("energy-kcal"))
            )
            protein = _to_float(nutriments.get("proteins_100g"))
            carbs = _to_float(nutriments.get("carbohydrates_100g"))
            fat = _to_float(nutriments.get("fat_100g"))
            if not all(_is_finite(value) for value in (kcal, protein, carbs, fat)):
                continue

            code = str(product.get("code") or "").strip()
            if code:
                candidate_id = f"off_{code}"
                url = product_page_url(self.base_url, code)
            else:
                candidate_id = f"off_idx_{index}_{item}"
                url = search_page_url(self.base_url, item, country_tag)

            candidates.append(
                NutritionCandidate(
                    id=candidate_id,
                    name=str(product.get("product_name") or "").strip() or item,
                    brand=str(product.get("brands") or "").strip() or None,
                    kcal_per_100g=round1(kcal),
                    protein_per_100g=round1(protein),
                    carbs_per_100g=round1(carbs),
                    fat_per_100g=round1(fat),
                    url=url,
                    source_type=source_type,
                    source_label=source_label,
                )
            )
        return candidates

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[Any]]", *, action: str
    ) -> Any:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                _logger.warning(
                    "Nutrition %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def extract_product_codes(html: str) -> list[str]:
    """Extract unique OpenFoodFacts product codes from a result page."""
    codes: list[str] = []
    for pattern in (_PRODUCT_LINK_RE, _ENCODED_PRODUCT_LINK_RE):
        for match in pattern.finditer(html):
            if match.group(1) not in codes:
                codes.append(match.group(1))
    return codes


def _score_candidate(
    candidate: NutritionCandidate, item_tokens: set[str]
) -> RankedCandidate:
    candidate_tokens = set(tokenize(f"{candidate.name} {candidate.brand or ''}"))
    overlap = len(item_tokens & candidate_tokens)
    bonus = SOURCE_BONUS.get(candidate.source_type, SOURCE_BONUS[SOURCE_WEB])
    score = max(0.0, min(1.0, round1(overlap / len(item_tokens) + bonus)))
    if overlap > 0:
        rationale = (
            f"Token overlap {overlap}/{len(item_tokens)}; "
            f"preferred {candidate.source_label}."
        )
    else:
        rationale = (
            f"No direct token overlap; kept for fallback from {candidate.source_label}."
        )
    return RankedCandidate(candidate=candidate, score=score, rationale=rationale)


def _merge(
    merged: dict[str, NutritionCandidate],
    candidates: list[NutritionCandidate],
    limit: int,
) -> None:
    for candidate in candidates:
        if len(merged) >= limit:
            return
        merged.setdefault(candidate.id, candidate)


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return math.nan
    return math.nan


def _is_finite(value: float) -> bool:
    return isinstance(value, int | float) and math.isfinite(value)


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"
