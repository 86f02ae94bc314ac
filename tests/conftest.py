import os

# Settings are loaded at import time; required values must exist before the package is imported.
os.environ.setdefault("ANALYSIS_GCP_PROJECT_ID", "test-project")
os.environ.setdefault("ANALYSIS_SUPABASE_URL", "https://supabase.test")
os.environ.setdefault("ANALYSIS_SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("ANALYSIS_LOG_LEVEL", "WARNING")

import copy

import pytest


VALID_UUID = "550e8400-e29b-41d4-a716-446655440000"


def make_product(product_type: str, product_id: int = 1, **overrides):
    product = {
        "product_id": product_id,
        "brand": "Round Lab",
        "title": f"Test {product_type}",
        "product_url": f"https://shop.test/products/{product_id}",
        "price_usd": 18.5,
        "star_rating": 4.6,
        "product_type": product_type,
        "reasoning": "Gentle formula that suits dry, easily irritated skin well.",
    }
    product.update(overrides)
    return product


VALID_ANALYSIS_PAYLOAD = {
    "analysis": {
        "overallScore": 72,
        "primaryState": "Good",
        "overallSummary": (
            "Your skin shows good overall balance with mild dehydration across the cheeks and a slightly "
            "compromised barrier around the nose. Your pores look refined and redness is minimal, so focus "
            "on steady hydration and barrier support."
        ),
        "metrics": {
            "hydration": 58,
            "barrier": 64,
            "hydrationSummary": "Cheeks look tight.",
            "barrierSummary": "Mild redness near the nose.",
        },
        "blueprint": {
            "approach": {"title": "Barrier-First Hydration", "summary": "Repair first, then hydrate."},
            "habit": {"title": "Drink Some Water", "summary": "Sip through the day.", "study": "Study"},
            "ingredient": {"title": "Ceramides", "summary": "Restore the barrier.", "study": "Study"},
        },
    },
    "routine": {
        "routine_title": "Calm and Hydrate",
        "routine_summary": "A simple routine to rebuild the barrier and keep skin hydrated all day long.",
        "products": [
            make_product("Cleanser", 1),
            make_product("Serum", 2),
            make_product("Moisturizer", 3),
            make_product("Sunscreen", 4),
        ],
    },
}


@pytest.fixture
def analysis_payload():
    return copy.deepcopy(VALID_ANALYSIS_PAYLOAD)


def product_row(product_id: int, **overrides):
    row = {
        "id": product_id,
        "brand": "Round Lab",
        "title": "Birch Juice Moisturizing Sunscreen",
        "product_url": f"https://shop.test/products/{product_id}",
        "image_url": None,
        "price_usd": 19.0,
        "star_rating": 4.7,
        "product_type": "Sunscreen",
        "full_ingredients_list": ["Water"],
        "key_ingredients": ["Birch Juice"],
        "target_audience": "Dry skin",
        "potential_concerns": None,
        "summary": "Hydrating chemical sunscreen.",
        "similarity": 0.82,
    }
    row.update(overrides)
    return row


class RecordingSleep:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)
