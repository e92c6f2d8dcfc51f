"""OpenFoodFacts API and web-search client."""

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx

MAX_PAGE_SIZE = 20


class OpenFoodFactsClient(Protocol):
    """Interface for OpenFoodFacts product lookups."""

    async def search_products(
        self, query: str, page_size: int, country_tag: str | None = None
    ) -> dict[str, object]:
        """Search products by free text and return raw API data."""

    async def get_product(self, code: str) -> dict[str, object] | None:
        """Fetch a product by barcode, or None when unknown."""

    async def search_web(self, query: str) -> str:
        """Run a web search and return the raw HTML page."""


def search_page_url(
    base_url: str, query: str, country_tag: str | None = None
) -> str:
    """Build the human-facing search url for a query."""
    params = {
        "search_terms": query,
        "search_simple": "1",
        "action": "process",
        "page_size": str(MAX_PAGE_SIZE),
    }
    if country_tag:
        params["countries_tags"] = country_tag
    return f"{base_url}/cgi/search.pl?{urlencode(params)}"


def product_page_url(base_url: str, code: str) -> str:
    """Build the canonical product url for a barcode."""
    return f"{base_url}/product/{quote(code, safe='')}"


@dataclass
class HttpxOpenFoodFactsClient(OpenFoodFactsClient):
    """HTTPX-backed OpenFoodFacts client."""

    base_url: str
    web_search_url: str
    user_agent: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, base_url: str, web_search_url: str, user_agent: str
    ) -> "HttpxOpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url,
            web_search_url=web_search_url,
            user_agent=user_agent,
            http_client=httpx.AsyncClient(),
        )

    async def search_products(
        self, query: str, page_size: int, country_tag: str | None = None
    ) -> dict[str, object]:
        """Search products through the JSON search endpoint."""
        params = {
            "search_terms": query,
            "search_simple": "1",
            "action": "process",
            "json": "1",
            "page_size": str(max(1, min(page_size, MAX_PAGE_SIZE))),
        }
        if country_tag:
            params["countries_tags"] = country_tag
        response = await self.http_client.get(
            f"{self.base_url}/cgi/search.pl",
            params=params,
            headers={"User-Agent": self.user_agent},
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def get_product(self, code: str) -> dict[str, object] | None:
        """Fetch a product by barcode."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v2/product/{quote(code, safe='')}.json",
            headers={"User-Agent": self.user_agent},
            timeout=15,
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        product = response.json().get("product")
        return product if isinstance(product, dict) else None

    async def search_web(self, query: str) -> str:
        """Search the web and return the result page HTML."""
        response = await self.http_client.get(
            self.web_search_url,
            params={"q": query},
            headers={"User-Agent": self.user_agent},
            timeout=15,
        )
        response.raise_for_status()
        return response.text

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
