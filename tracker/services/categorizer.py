"""Layered merchant categorization: owner override, global cache, brand keywords, then place search."""

import httpx

from tracker.core.utils import get_logger
from tracker.services.merchant_categories import MerchantCategoryStore
from tracker.services.places_client import PlacesClient, PlacesSearchError, category_for_place_types

logger = get_logger("card-tracker.categorizer")

# Checked in order; first keyword contained in the lower-cased merchant name wins.
COMMON_MERCHANT_MAPPINGS = {
    "amazon": "Shopping",
    "uber eats": "Food & Dining",
    "doordash": "Food & Dining",
    "grubhub": "Food & Dining",
    "postmates": "Food & Dining",
    "instacart": "Shopping",
    "netflix": "Entertainment",
    "spotify": "Entertainment",
    "hulu": "Entertainment",
    "disney": "Entertainment",
    "apple": "Shopping",
    "google": "Business",
    "microsoft": "Business",
    "shell": "Transportation",
    "chevron": "Transportation",
    "exxon": "Transportation",
    "mobil": "Transportation",
    "costco": "Shopping",
    "walmart": "Shopping",
    "target": "Shopping",
    "walgreens": "Shopping",
    "cvs": "Shopping",
    "starbucks": "Food & Dining",
    "mcdonald": "Food & Dining",
    "chipotle": "Food & Dining",
    "subway": "Food & Dining",
    "chick-fil-a": "Food & Dining",
    "uber": "Transportation",
    "lyft": "Transportation",
    "airbnb": "Travel",
    "marriott": "Travel",
    "hilton": "Travel",
    "delta": "Travel",
    "united": "Travel",
    "american airlines": "Travel",
    "southwest": "Travel",
}


def categorize_by_common_name(merchant_name: str) -> str | None:
    """Match well-known brand keywords contained in the merchant name."""
    lower_name = merchant_name.lower()
    for keyword, category in COMMON_MERCHANT_MAPPINGS.items():
        if keyword in lower_name:
            return category
    return None


class CategoryResolver:
    """Resolve a merchant's category and backfill the global cache with anything newly learned."""

    def __init__(self, store: MerchantCategoryStore, places: PlacesClient | None = None) -> None:
        """Initialize the resolver; without a places client the external lookup step is skipped."""
        self.store = store
        self.places = places

    def resolve(self, owner: str, merchant_name: str) -> str | None:
        """Return the category for `merchant_name` as seen by `owner`, or None if nothing matched."""
        category = self.store.get_user_override(owner, merchant_name)
        if category:
            return category
        category = self.store.get_global(merchant_name)
        if category:
            return category
        category = categorize_by_common_name(merchant_name)
        if category:
            logger.info(f"Categorized '{merchant_name}' as '{category}' (common name match)")
            self.store.set_global(merchant_name, category, "heuristic")
            return category
        category = self._lookup_place(merchant_name)
        if category:
            self.store.set_global(merchant_name, category, "external")
        return category

    def _lookup_place(self, merchant_name: str) -> str | None:
        if self.places is None:
            return None
        try:
            types = self.places.search(merchant_name)
        except (httpx.HTTPError, PlacesSearchError, ValueError) as exc:
            logger.warning(f"Place search failed for '{merchant_name}': {exc}")
            return None
        category = category_for_place_types(types)
        if category:
            logger.info(f"Categorized '{merchant_name}' as '{category}' (place types: {', '.join(types)})")
        else:
            logger.info(f"No category mapping for '{merchant_name}' (place types: {', '.join(types) or 'none'})")
        return category
