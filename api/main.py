"""
Fragranza Fulfilment API: FastAPI Backend
Delivery quotes and order lifecycle for the storefront checkout
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db.database import create_tables, engine
from routers import delivery, orders
from services.lifecycle import TransitionError
from services.maps import close_clients
from services.notifications import drain_pending

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    if settings.CREATE_TABLES:
        await create_tables()
    logger.info("Fragranza Fulfilment API starting")
    yield
    await drain_pending()
    await close_clients()
    await engine.dispose()
    logger.info("Fragranza Fulfilment API shut down")


app = FastAPI(
    title="Fragranza Fulfilment API",
    description="Delivery fare quotes and order lifecycle for the storefront",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TransitionError)
async def transition_error_handler(request: Request, exc: TransitionError):
    return JSONResponse(status_code=409, content=exc.as_dict())


# ── Routers ────────────────────────────────────────────────
app.include_router(delivery.router, prefix="/api/delivery", tags=["Delivery"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Fragranza Fulfilment API"}
