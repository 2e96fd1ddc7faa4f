"""
Search Service

FastAPI service for marketplace product search with stopword removal,
synonym expansion and typo tolerance.
"""

from typing import List, Optional

from fastapi import FastAPI, Depends, Query
from fastapi.responses import Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import get_config
from shared.database import check_database_health, get_db_manager, get_db_session
from shared.logging import get_logger
from shared.middleware import add_middleware
from shared.models import MarketplaceProduct
from shared.schemas import ProductHit, SearchResponse

from .settings import SearchRelevanceSettings, get_search_settings
from .stopwords import extract_meaningful_words
from .synonyms import expand_query_terms, suggest_alternative_queries
from .typo_tolerance import apply_typo_tolerance, generate_spelling_suggestions

# Prometheus metrics
SEARCH_REQUESTS = Counter('search_service_requests_total', 'Search requests', ['outcome'])
SEARCH_DURATION = Histogram('search_service_request_duration_seconds', 'Search duration')

# Products scanned when falling back to fuzzy matching
FUZZY_CANDIDATE_LIMIT = 500

app = FastAPI(title="Search Service", version="1.0.0")
logger = get_logger(__name__)
config = get_config()

add_middleware(app)


def _product_text(product: MarketplaceProduct) -> str:
    return f"{product.name} {product.description or ''}"


class ProductSearch:
    """Runs one search against the product table"""

    def __init__(self, session: AsyncSession, settings: SearchRelevanceSettings):
        self.session = session
        self.settings = settings

    def _base_query(self, category: Optional[str]):
        stmt = select(MarketplaceProduct)
        if category:
            stmt = stmt.where(MarketplaceProduct.category == category)
        return stmt

    async def exact(self, terms: List[str], category: Optional[str], limit: int) -> List[MarketplaceProduct]:
        conditions = []
        for term in terms:
            pattern = f"%{term}%"
            conditions.append(MarketplaceProduct.name.ilike(pattern))
            conditions.append(MarketplaceProduct.description.ilike(pattern))
        stmt = self._base_query(category).where(or_(*conditions)).order_by(MarketplaceProduct.name).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def candidates(self, category: Optional[str]) -> List[MarketplaceProduct]:
        stmt = self._base_query(category).order_by(MarketplaceProduct.created_at.desc()).limit(FUZZY_CANDIDATE_LIMIT)
        return list((await self.session.execute(stmt)).scalars().all())

    async def fuzzy(self, terms: List[str], candidates: List[MarketplaceProduct], limit: int) -> List[MarketplaceProduct]:
        by_id = {str(product.id): product for product in candidates}
        matched = apply_typo_tolerance(
            " ".join(terms),
            [(product_id, _product_text(product)) for product_id, product in by_id.items()],
        )
        return [by_id[product_id] for product_id in matched[:limit]]

    def vocabulary(self, candidates: List[MarketplaceProduct]) -> List[str]:
        words = {}
        for product in candidates:
            for word in extract_meaningful_words(_product_text(product), self.settings):
                words[word] = None
        return list(words)


@app.on_event("startup")
async def on_startup():
    await get_db_manager().initialize()
    logger.info("Search service initialized")


@app.on_event("shutdown")
async def on_shutdown():
    await get_db_manager().close()
    logger.info("Search service shutdown complete")


@app.get("/health")
async def health_check(deep: bool = False):
    """Health check endpoint with optional deep checks"""
    health_status = {"status": "healthy", "service": "search-service"}
    if deep:
        database = await check_database_health()
        health_status["database"] = database["status"]
        if database["status"] != "healthy":
            health_status["status"] = "unhealthy"
    return health_status


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, max_length=200),
    category: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Search marketplace products.

    Stopwords are dropped and the remaining words expanded with synonyms.
    When no product contains any term, products are matched with typo
    tolerance; when that also fails, spelling suggestions are returned.
    """
    with SEARCH_DURATION.time():
        settings = await get_search_settings(db)
        search_engine = ProductSearch(db, settings)

        meaningful = extract_meaningful_words(q, settings)
        terms = expand_query_terms(" ".join(meaningful), settings) if meaningful else []
        alternatives = suggest_alternative_queries(q, settings=settings)

        if not terms:
            SEARCH_REQUESTS.labels(outcome="empty").inc()
            return SearchResponse(query=q, terms=[], results=[], alternative_queries=alternatives)

        results = await search_engine.exact(terms, category, limit)
        suggestions: List[str] = []
        outcome = "hit"

        if not results:
            candidates = await search_engine.candidates(category)
            results = await search_engine.fuzzy(meaningful, candidates, limit)
            outcome = "fuzzy"
            if not results:
                suggestions = generate_spelling_suggestions(" ".join(meaningful), search_engine.vocabulary(candidates))
                outcome = "miss"

    SEARCH_REQUESTS.labels(outcome=outcome).inc()
    logger.info("Search completed", extra={"terms": terms, "outcome": outcome, "result_count": len(results)})

    return SearchResponse(
        query=q,
        terms=terms,
        results=[ProductHit.model_validate(product) for product in results],
        suggestions=suggestions,
        alternative_queries=alternatives,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
