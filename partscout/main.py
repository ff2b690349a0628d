"""
PartScout API: auto-parts listing search across eBay and Craigslist.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from partscout.api.agent_routes import router as agent_router
from partscout.api.dependencies import close_clients, get_agent_client
from partscout.api.ebay_deletion import router as ebay_deletion_router
from partscout.api.search_routes import router as search_router
from partscout.api.user_routes import router as user_router
from partscout.core.config import get_settings
from partscout.core.database import close_db, init_db, ping_db
from partscout.core.logging_config import configure_logging
from partscout.models.schemas import HealthResponse

VERSION = "1.0.0"

settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "PartScout API starting",
        env=settings.app_env,
        ebay_configured=settings.ebay_api_configured,
        ebay_sandbox=settings.ebay_sandbox_mode,
        agent_configured=settings.agent_configured,
    )

    # Searches still work without the listing store
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))

    yield

    logger.info("PartScout API stopping")
    await close_clients()
    await close_db()


app = FastAPI(
    title="PartScout API",
    description="""
    Auto-parts listing search across eBay and Craigslist.

    * **Search**: one query, both marketplaces, newest listings first
    * **Preferences**: per-user category, condition, vehicle and price filters
    * **Actions**: star or hide listings
    * **Agent**: proxy to the external grading agent
    """,
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "root", "description": "Service information"},
        {"name": "health", "description": "Service status"},
        {"name": "search", "description": "Aggregated listing search"},
        {"name": "users", "description": "Preferences and listing actions"},
        {"name": "agent", "description": "Grading agent proxy"},
        {"name": "ebay", "description": "eBay marketplace account deletion"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled exception", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.app_debug else None,
        },
    )


for router in (search_router, user_router, agent_router, ebay_deletion_router):
    app.include_router(router)


@app.get("/", tags=["root"])
async def root():
    return {"service": "PartScout", "version": VERSION, "docs": "/docs"}


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """
    Service health.

    ``status`` is ``degraded`` when the database is unreachable; search
    keeps working in that state.
    """
    database = await ping_db()

    if not settings.ebay_api_configured:
        ebay_api = "not_configured"
    elif settings.ebay_sandbox_mode:
        ebay_api = "sandbox"
    else:
        ebay_api = "production"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        version=VERSION,
        database=database,
        ebay_api=ebay_api,
        agent="configured" if get_agent_client().configured else "not_configured",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "partscout.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
