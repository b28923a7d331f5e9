"""Place search client used to categorize merchants the heuristics do not know."""

import httpx

from tracker.core.utils import get_logger

logger = get_logger("card-tracker.places")

PLACE_TYPE_TO_CATEGORY = {
    # Food & Dining
    "restaurant": "Food & Dining",
    "cafe": "Food & Dining",
    "bakery": "Food & Dining",
    "bar": "Food & Dining",
    "meal_delivery": "Food & Dining",
    "meal_takeaway": "Food & Dining",
    "food": "Food & Dining",
    # Shopping
    "store": "Shopping",
    "supermarket": "Shopping",
    "grocery_or_supermarket": "Shopping",
    "shopping_mall": "Shopping",
    "clothing_store": "Shopping",
    "department_store": "Shopping",
    "electronics_store": "Shopping",
    "home_goods_store": "Shopping",
    "jewelry_store": "Shopping",
    "shoe_store": "Shopping",
    "convenience_store": "Shopping",
    "liquor_store": "Shopping",
    "pet_store": "Shopping",
    "pharmacy": "Shopping",
    "beauty_salon": "Shopping",
    "hair_care": "Shopping",
    "laundry": "Shopping",
    "dry_cleaning": "Shopping",
    "florist": "Shopping",
    "furniture_store": "Shopping",
    "hardware_store": "Shopping",
    # Entertainment
    "movie_theater": "Entertainment",
    "bowling_alley": "Entertainment",
    "casino": "Entertainment",
    "night_club": "Entertainment",
    "amusement_park": "Entertainment",
    "aquarium": "Entertainment",
    "museum": "Entertainment",
    "tourist_attraction": "Entertainment",
    "zoo": "Entertainment",
    "stadium": "Entertainment",
    "gym": "Entertainment",
    "spa": "Entertainment",
    # Transportation
    "gas_station": "Transportation",
    "parking": "Transportation",
    "car_repair": "Transportation",
    "car_dealer": "Transportation",
    "car_rental": "Transportation",
    "car_wash": "Transportation",
    "taxi_stand": "Transportation",
    "transit_station": "Transportation",
    "subway_station": "Transportation",
    "train_station": "Transportation",
    "bus_station": "Transportation",
    "airport": "Transportation",
    # Travel
    "lodging": "Travel",
    "hotel": "Travel",
    "travel_agency": "Travel",
    "campground": "Travel",
    "rv_park": "Travel",
    # Utilities
    "electrician": "Utilities",
    "plumber": "Utilities",
    "roofing_contractor": "Utilities",
    "general_contractor": "Utilities",
    "moving_company": "Utilities",
    "storage": "Utilities",
    # Healthcare
    "doctor": "Healthcare",
    "dentist": "Healthcare",
    "hospital": "Healthcare",
    "physiotherapist": "Healthcare",
    "veterinary_care": "Healthcare",
    "health": "Healthcare",
    "medical": "Healthcare",
    # Education
    "school": "Education",
    "university": "Education",
    "library": "Education",
    "book_store": "Education",
    # Business
    "bank": "Business",
    "atm": "Business",
    "accounting": "Business",
    "insurance_agency": "Business",
    "lawyer": "Business",
    "real_estate_agency": "Business",
    "post_office": "Business",
    "courthouse": "Business",
    "embassy": "Business",
    "local_government_office": "Business",
    "police": "Business",
    "fire_station": "Business",
}


class PlacesSearchError(RuntimeError):
    """Raised when the place search service answers with an error status."""


def category_for_place_types(types: list[str]) -> str | None:
    """Map the first place type with a known category, in the order the service listed them."""
    for place_type in types:
        category = PLACE_TYPE_TO_CATEGORY.get(place_type)
        if category:
            return category
    return None


class PlacesClient:
    """Text search against the Google Places API, returning the place types of the best match."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://maps.googleapis.com/maps/api/place/textsearch/json",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client; pass `http_client` to reuse a connection pool or a test transport."""
        self.api_key = api_key
        self.base_url = base_url
        self.http = http_client or httpx.Client(timeout=timeout)

    def search(self, name: str) -> list[str]:
        """Return the place types of the first result for `name`, or an empty list when nothing matched.

        Raises:
            PlacesSearchError: on an error status or a response body of unexpected shape.
        """
        response = self.http.get(self.base_url, params={"query": name, "key": self.api_key})
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            msg = f"Place search for '{name}' returned {type(data).__name__}, expected an object"
            raise PlacesSearchError(msg)
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            msg = f"Place search for '{name}' returned status {status}: {data.get('error_message', '')}"
            raise PlacesSearchError(msg)
        results = data.get("results") or []
        if not isinstance(results, list):
            msg = f"Place search for '{name}' returned malformed results: {results!r}"
            raise PlacesSearchError(msg)
        if not results:
            return []
        first = results[0]
        types = (first.get("types") or []) if isinstance(first, dict) else None
        if not isinstance(types, list) or not all(isinstance(place_type, str) for place_type in types):
            msg = f"Place search for '{name}' returned a malformed first result: {first!r}"
            raise PlacesSearchError(msg)
        return types

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.http.close()
