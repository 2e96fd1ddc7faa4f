"""Tests for the Search Service API"""

import pytest

from services.search_service.main import app
from services.search_service.settings import SEARCH_SETTINGS_KEY
from shared.models import MarketplaceProduct, Setting


@pytest.fixture
def client(api_client):
    return api_client(app)


@pytest.fixture
async def catalogue(test_session, product, vendor):
    compost = MarketplaceProduct(
        seller_id=vendor.id,
        name="Natural Compost",
        description="Bio fertilizer for vegetables",
        category="soil",
        price=12.0,
    )
    hoe = MarketplaceProduct(
        seller_id=vendor.id,
        name="Steel Hoe",
        description="Hand tool for weeding",
        category="tools",
        price=20.0,
    )
    test_session.add_all([compost, hoe])
    await test_session.flush()
    return {"seeds": product, "compost": compost, "hoe": hoe}


class TestSearch:

    async def test_synonym_expansion_finds_related_products(self, client, catalogue):
        response = await client.get("/search", params={"q": "organic"})

        assert response.status_code == 200
        data = response.json()
        assert data["terms"] == ["organic", "natural", "bio", "chemical-free"]
        assert [hit["name"] for hit in data["results"]] == ["Natural Compost", "Organic Tomato Seeds"]
        assert data["alternative_queries"] == ["natural", "bio", "chemical-free"]

    async def test_stopwords_are_dropped(self, client, catalogue):
        response = await client.get("/search", params={"q": "the hoe for weeding"})

        data = response.json()
        assert data["terms"] == ["hoe", "weeding"]
        assert [hit["name"] for hit in data["results"]] == ["Steel Hoe"]

    async def test_category_filter(self, client, catalogue):
        response = await client.get("/search", params={"q": "organic", "category": "seeds"})
        assert [hit["name"] for hit in response.json()["results"]] == ["Organic Tomato Seeds"]

    async def test_typo_fallback(self, client, catalogue):
        response = await client.get("/search", params={"q": "tomatoe"})

        data = response.json()
        assert [hit["name"] for hit in data["results"]] == ["Organic Tomato Seeds"]
        assert data["suggestions"] == []

    async def test_spelling_suggestions_when_nothing_matches(self, client, catalogue):
        response = await client.get("/search", params={"q": "tamoto"})

        data = response.json()
        assert data["results"] == []
        assert data["suggestions"] == ["tomato"]

    async def test_only_stopwords(self, client, catalogue):
        response = await client.get("/search", params={"q": "the and of"})

        data = response.json()
        assert data["terms"] == []
        assert data["results"] == []

    async def test_settings_row_disables_synonyms(self, client, catalogue, test_session):
        test_session.add(Setting(key=SEARCH_SETTINGS_KEY, value={"enableSynonyms": False}))
        await test_session.flush()

        response = await client.get("/search", params={"q": "organic"})

        data = response.json()
        assert data["terms"] == ["organic"]
        assert [hit["name"] for hit in data["results"]] == ["Organic Tomato Seeds"]
        assert data["alternative_queries"] == []

    async def test_limit(self, client, catalogue):
        response = await client.get("/search", params={"q": "organic", "limit": 1})
        assert len(response.json()["results"]) == 1

    async def test_query_required(self, client):
        response = await client.get("/search")
        assert response.status_code == 422

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json()["service"] == "search-service"
