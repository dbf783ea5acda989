import copy
import json
from io import BytesIO
from typing import Any, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.core.rate_limit import analysis_rate_limit
from app.main import app
from app.services.richness_validator import RichnessRules, WEEKLY_SCHEMA_MINIMAL, WEEKLY_SCHEMA_STRUCTURED

RICH_ANALYSIS: Dict[str, Any] = {
    "skinType": {"type": "Combination / Acne-prone", "confidence": 0.78},
    "concerns": [
        {"name": "Inflammatory acne", "severity": "Moderate", "confidence": 0.82,
         "evidence": "clustered red papules on both cheeks"},
        {"name": "Excess oil / sebum", "severity": "Mild", "confidence": 0.7,
         "evidence": "shine across the T-zone"},
        {"name": "Post-inflammatory erythema (PIE)", "severity": "Mild", "confidence": 0.6,
         "evidence": "flat red marks along the jaw"},
    ],
    "ingredients": [
        {"ingredient": "Niacinamide", "reason": "oil control and redness", "cautions": []},
        {"ingredient": "Azelaic acid", "reason": "inflammatory acne and PIE", "cautions": ["may tingle"]},
    ],
    "products": [
        {"name": "Low pH Good Morning Gel Cleanser", "brand": "COSRX", "category": "Cleanser", "why": "gentle"},
        {"name": "Aloe Soothing Sun Cream", "brand": "COSRX", "category": "Sunscreen", "why": "daily SPF"},
        {"name": "Oil-Free Ultra Moisturizing Lotion", "brand": "COSRX", "category": "Moisturizer", "why": "light"},
        {"name": "Niacinamide 10% + Zinc 1%", "brand": "The Ordinary", "category": "Serum", "why": "oil control"},
        {"name": "Acne Pimple Master Patch", "brand": "COSRX", "category": "Spot treatment", "why": "spots"},
    ],
    "routine": {
        "AM": [
            "Cleanser: gel cleanser, daily, skip if skin feels tight",
            "Toner: hydrating toner, daily",
            "Serum: niacinamide, daily, skip if stinging",
            "Moisturizer: light lotion, daily",
            "Sunscreen: SPF 50, daily, reapply outdoors",
        ],
        "PM": [
            "Oil cleanser: daily, only if wearing sunscreen/makeup",
            "Cleanser: gel cleanser, daily",
            "Toner: hydrating toner, daily",
            "Treatment: azelaic acid, 3x-week, only on treatment nights",
            "Moisturizer: barrier cream, daily",
            "Spot treatment: patch, as needed",
        ],
        "weekly": [
            "Daily base (AM): cleanse, niacinamide, moisturize, SPF",
            "Daily base (PM): double cleanse, hydrate, moisturize",
            "Active cycle (Mon–Sun): Mon Treatment | Tue Barrier | Wed Treatment | Thu Barrier | "
            "Fri Treatment | Sat Barrier | Sun Barrier",
            "Ramp-up (4 weeks): Weeks 1–2 twice weekly; Weeks 3–4 three times; Maintenance as tolerated",
            "Rules: pause actives if stinging lasts more than a day; patch test new products",
        ],
    },
    "conflicts": [{"ingredients": ["Azelaic acid", "AHA"], "warning": "do not combine same night"}],
    "disclaimers": ["Not a medical diagnosis."],
    "timestamp": "2025-01-31T09:15:02.123Z",
}


def thin_copy(analysis: Dict[str, Any], am_steps: int = 3) -> Dict[str, Any]:
    thin = copy.deepcopy(analysis)
    thin["routine"]["AM"] = thin["routine"]["AM"][:am_steps]
    return thin


def make_image_bytes(width: int, height: int, fmt: str = "JPEG", mode: str = "RGB") -> bytes:
    color = (200, 150, 120, 255)[:len(mode)] if mode in ("RGB", "RGBA") else 128
    image = Image.new(mode, (width, height), color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


class FakeCompletionClient:
    """Scripted completion client; records every call it receives"""

    model = "fake-model"
    vision_model = "fake-vision"
    embedding_model = "fake-embedding"

    def __init__(self, responses: Optional[List[Any]] = None, embedding: Optional[List[float]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.embedding = embedding if embedding is not None else [0.1, 0.2, 0.3]
        self.embed_calls = 0

    async def complete(self, prompt, image_data_uri, *, follow_up=None, temperature, max_tokens):
        self.calls.append({
            "prompt": prompt,
            "image_data_uri": image_data_uri,
            "follow_up": follow_up,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            raise AssertionError("Unexpected completion call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def embed(self, text):
        self.embed_calls += 1
        return list(self.embedding)

    async def embed_image(self, image_data_uri):
        return await self.embed("description")


@pytest.fixture
def rich_analysis() -> Dict[str, Any]:
    return copy.deepcopy(RICH_ANALYSIS)


@pytest.fixture
def thin_analysis() -> Dict[str, Any]:
    return thin_copy(RICH_ANALYSIS)


@pytest.fixture
def rich_json(rich_analysis) -> str:
    return json.dumps(rich_analysis)


@pytest.fixture
def minimal_rules() -> RichnessRules:
    return RichnessRules.for_schema(WEEKLY_SCHEMA_MINIMAL)


@pytest.fixture
def structured_rules() -> RichnessRules:
    return RichnessRules.for_schema(WEEKLY_SCHEMA_STRUCTURED)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes(640, 480)


@pytest.fixture
def image_factory():
    """Build encoded test images of a given size and format"""
    return make_image_bytes


@pytest.fixture
def fake_client_factory():
    return FakeCompletionClient


@pytest.fixture
async def client():
    """Test client with the per-client rate limit switched off"""
    app.dependency_overrides[analysis_rate_limit] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
