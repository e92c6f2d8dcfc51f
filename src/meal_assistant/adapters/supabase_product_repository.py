"""Supabase repository for the local product table."""

from dataclasses import dataclass

from supabase import Client

from meal_assistant.domain.nutrition import LocalProduct
from meal_assistant.services.nutrition import ProductRepository


@dataclass
class SupabaseProductRepository(ProductRepository):
    """Search consumed products by name and aliases."""

    client: Client

    def search_products(self, query: str, limit: int) -> list[LocalProduct]:
        """Return products whose search text contains the query."""
        normalized = " ".join(query.lower().split())
        if not normalized:
            return []
        response = (
            self.client.table("consumed_products")
            .select(
                "id, name, aliases, kcal_per_100g, protein_per_100g, "
                "carbs_per_100g, fat_per_100g"
            )
            .ilike("search_text", f"%{normalized}%")
            .order("id", desc=False)
            .limit(limit)
            .execute()
        )
        return [
            LocalProduct(
                id=int(row["id"]),
                name=row["name"],
                aliases=row.get("aliases") or "",
                kcal_per_100g=float(row["kcal_per_100g"]),
                protein_per_100g=float(row["protein_per_100g"]),
                carbs_per_100g=float(row["carbs_per_100g"]),
                fat_per_100g=float(row["fat_per_100g"]),
            )
            for row in response.data or []
        ]
