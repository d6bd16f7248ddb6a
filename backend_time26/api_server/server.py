"""
FastAPI server for TIME26 rewards.

Mounts cron, user, and gasless-mint routers; translates domain errors into JSON
responses of the form {"detail": ...}. Tables are created on startup.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend_time26 import __version__
from backend_time26.api_server.gasless_mint import router as mint_router
from backend_time26.api_server.rewards_cron import router as cron_router
from backend_time26.api_server.user_balance import router as user_router
from backend_time26.core.exceptions import (
    AlreadyMintedError,
    ChainError,
    InsufficientBalanceError,
    LedgerContentionError,
    MintFailedError,
    NotEligibleError,
    PriceOracleError,
    SessionNotFoundError,
    SettlementError,
    Time26Error,
    UserNotFoundError,
    ValidationError,
)
from backend_time26.database import init_db
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create ledger tables before serving."""
    init_db()
    logger.info("api_started", version=__version__)
    yield
    logger.info("api_stopped")


app = FastAPI(
    title="Backend TIME26 API",
    description="Daily drawing reward settlement, claim proofs, and gasless minting.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(cron_router)
app.include_router(user_router)
app.include_router(mint_router)


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe: API is up."""
    return {"status": "ok"}


def _error_response(exc: Time26Error) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, InsufficientBalanceError):
        return 400, {
            "detail": str(exc),
            "error": "Insufficient balance",
            "available": str(exc.available),
            "requested": str(exc.requested),
        }
    if isinstance(exc, NotEligibleError):
        r = exc.result
        return 400, {
            "detail": str(exc),
            "error": r.reason,
            "required": str(r.total_cost_time26),
            "available": str(r.unclaimed_balance),
            "shortfall": str(r.shortfall) if r.shortfall is not None else None,
        }
    if isinstance(exc, MintFailedError):
        return 500, {"detail": str(exc), "rolledBack": exc.rolled_back}
    if isinstance(exc, ValidationError):
        return 400, {"detail": str(exc)}
    if isinstance(exc, (UserNotFoundError, SessionNotFoundError)):
        return 404, {"detail": str(exc)}
    if isinstance(exc, AlreadyMintedError):
        return 409, {"detail": str(exc), "txHash": exc.tx_hash}
    if isinstance(exc, LedgerContentionError):
        return 409, {"detail": "Balance is being updated concurrently, retry"}
    if isinstance(exc, (ChainError, PriceOracleError)):
        return 503, {"detail": str(exc)}
    if isinstance(exc, SettlementError):
        return 500, {"detail": str(exc)}
    return 500, {"detail": "Internal error"}


@app.exception_handler(Time26Error)
def time26_error_handler(request: Request, exc: Time26Error) -> JSONResponse:
    status, body = _error_response(exc)
    if status >= 500:
        logger.error("api_request_failed", path=request.url.path, status=status, error=str(exc))
    else:
        logger.info("api_request_rejected", path=request.url.path, status=status, error=type(exc).__name__)
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
    """Consistent JSON error response for HTTPException."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
