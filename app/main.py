import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.accounts.router import router as accounts_router
from app.admin.router import router as admin_router
from app.auth.router import router as auth_router
from app.billing.router import router as billing_router
from app.config import settings
from app.core.exceptions import AppError
from app.credits.router import router as credits_router
from app.db.session import engine
from app.pricing.router import router as pricing_router
from app.usage.router import router as usage_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Credit ledger starting")
    yield
    await engine.dispose()


app = FastAPI(
    title="Credit Ledger",
    version="1.0.0",
    description="Multi-tenant credit ledger for metered review and SEO features.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


# ── Tenancy ───────────────────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(accounts_router)

# ── Credits ───────────────────────────────────────────────────────────────────
app.include_router(credits_router)
app.include_router(pricing_router)
app.include_router(usage_router)

# ── Payments & operators ──────────────────────────────────────────────────────
app.include_router(billing_router)
app.include_router(admin_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "1.0.0"}
