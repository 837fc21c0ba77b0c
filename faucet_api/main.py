"""
Faucet API - HTTP surface for the testnet faucet.

Provides REST endpoints for:
- Claiming the drip (POST /api/claim)
- Checking wallet eligibility (GET /api/check-eligibility/{address})
- Health checks (GET /health)
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .claim import ClaimOrchestrator
from .config import Settings, get_settings
from .db import ClaimLedger
from .eligibility import utcnow
from .errors import (
    ClaimInProgressError,
    InvalidAddressError,
    NotEligibleError,
)
from .evm import TransferClient
from .models import (
    ClaimRequest,
    ClaimResponse,
    EligibilityResponse,
    ErrorResponse,
    HealthResponse,
)
from .reconcile import Reconciler

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

GENERIC_CLAIM_ERROR = "Error processing the request. Please try again later."
GENERIC_ELIGIBILITY_ERROR = "Error checking eligibility"


def configure_stdlib_logging(debug: bool = False) -> None:
    """Give the stdlib loggers behind structlog a handler and an INFO floor."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )


async def _log_startup_balance(transfer: TransferClient, settings: Settings) -> None:
    if not await transfer.check_connection():
        logger.error("evm_unreachable", rpc_url=settings.rpc_url)
        return
    if not transfer.account:
        logger.warning("faucet_key_missing", message="PRIVATE_KEY not configured, claims will fail")
        return

    balance = await transfer.get_balance()
    logger.info("faucet_balance", address=transfer.address, balance_eth=str(balance))
    if balance < settings.low_balance_warning_eth:
        logger.warning(
            "faucet_balance_low",
            balance_eth=str(balance),
            threshold_eth=str(settings.low_balance_warning_eth),
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_stdlib_logging(settings.debug)

    ledger = ClaimLedger(settings.database_url)
    transfer = TransferClient(settings)
    reconciler = Reconciler(
        ledger,
        transfer,
        grace_period=timedelta(seconds=settings.confirmation_timeout_seconds),
    )

    app.state.ledger = ledger
    app.state.transfer = transfer
    app.state.orchestrator = ClaimOrchestrator(ledger, transfer)

    try:
        await _log_startup_balance(transfer, settings)
    except Exception as e:
        logger.error("startup_balance_check_failed", error=str(e))

    reconcile_task = asyncio.create_task(
        reconciler.run(settings.reconcile_interval_seconds)
    )

    logger.info(
        "API started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        evm_rpc=settings.rpc_url,
        chain_id=settings.chain_id,
    )

    yield

    # Cleanup
    reconciler.stop()
    reconcile_task.cancel()
    with suppress(asyncio.CancelledError):
        await reconcile_task
    ledger.close()

    logger.info("API stopped")


# Create FastAPI app
app = FastAPI(
    title="Faucet API",
    description="Testnet ETH faucet with a 24 hour per-wallet cooldown",
    version=__version__,
    lifespan=lifespan,
)


# Add CORS middleware
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ============================================================================
# Dependencies
# ============================================================================


def get_ledger(request: Request) -> ClaimLedger:
    return request.app.state.ledger


def get_transfer_client(request: Request) -> TransferClient:
    return request.app.state.transfer


def get_orchestrator(request: Request) -> ClaimOrchestrator:
    return request.app.state.orchestrator


def _json(model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Any malformed claim body is reported as an invalid address."""
    if request.url.path == "/api/claim":
        logger.info("claim_request_invalid", errors=len(exc.errors()))
        return _json(ErrorResponse(error=str(InvalidAddressError(None))), status_code=400)
    return await request_validation_exception_handler(request, exc)


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check(
    ledger: ClaimLedger = Depends(get_ledger),
    transfer: TransferClient = Depends(get_transfer_client),
) -> JSONResponse:
    """
    Check database and EVM connectivity and report the faucet balance.
    """
    try:
        if not await asyncio.to_thread(ledger.ping):
            raise RuntimeError("database unreachable")
        connected = await transfer.check_connection()
        balance = await transfer.get_balance()

        return _json(
            HealthResponse(
                status="healthy",
                timestamp=utcnow(),
                database="connected",
                ethereum="connected" if connected else "disconnected",
                balance=f"{balance} ETH",
            )
        )
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return _json(
            HealthResponse(
                status="unhealthy",
                timestamp=utcnow(),
                error="Service unavailable",
            ),
            status_code=503,
        )


# ============================================================================
# Claim
# ============================================================================


@app.post("/api/claim", response_model=ClaimResponse)
async def claim(
    request: ClaimRequest,
    orchestrator: ClaimOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """
    Send the drip to a wallet.

    Fails with 429 while the wallet's 24 hour cooldown is active.
    """
    try:
        result = await orchestrator.claim(request.wallet_address)
    except InvalidAddressError as e:
        return _json(ErrorResponse(error=str(e)), status_code=400)
    except NotEligibleError as e:
        return _json(
            ClaimResponse(
                success=False,
                error=str(e),
                next_claim_time=e.next_claim_time,
                last_claim_time=e.last_claim_time,
            ),
            status_code=429,
        )
    except ClaimInProgressError as e:
        return _json(ErrorResponse(error=str(e)), status_code=409)
    except Exception:
        # Transfer and ledger failures: no internal detail leaves the API.
        logger.exception("claim_failed", wallet=request.wallet_address)
        return _json(ErrorResponse(error=GENERIC_CLAIM_ERROR), status_code=500)

    return _json(
        ClaimResponse(
            success=True,
            transaction_hash=result.tx_hash,
            amount=str(result.amount_eth),
            next_claim_time=result.next_claim_time,
            message="Reward sent successfully",
        )
    )


# ============================================================================
# Eligibility
# ============================================================================


@app.get("/api/check-eligibility/{address}", response_model=EligibilityResponse)
async def check_eligibility(
    address: str,
    orchestrator: ClaimOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """
    Report whether a wallet may claim now, and if not, when.
    """
    try:
        eligibility = await orchestrator.check_eligibility(address)
    except InvalidAddressError as e:
        return _json(ErrorResponse(error=str(e)), status_code=400)
    except Exception:
        logger.exception("eligibility_check_failed", wallet=address)
        return _json(ErrorResponse(error=GENERIC_ELIGIBILITY_ERROR), status_code=500)

    if eligibility.first_time:
        return _json(
            EligibilityResponse(
                eligible=True,
                first_time=True,
                message="Wallet eligible for its first claim",
            )
        )
    if eligibility.eligible:
        return _json(
            EligibilityResponse(
                eligible=True,
                last_claim_time=eligibility.last_claim_time,
                message="Wallet eligible to claim",
            )
        )
    return _json(
        EligibilityResponse(
            eligible=False,
            last_claim_time=eligibility.last_claim_time,
            next_claim_time=eligibility.next_claim_time,
            time_remaining_ms=eligibility.time_remaining_ms,
            message="You must wait before claiming again",
        )
    )


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "faucet_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
