#!/usr/bin/env python3
"""
PUMP SWAP - FastAPI Backend
REST access to token creation, bundled trades, quotes and bundle status.

Every response uses the envelope {"success": bool, "data": ..., "error": str | null}.
"""

import logging
import os
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Annotated, Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pumpswap import BotConfig, PumpSwapLogger, __version__
from pumpswap.bot import build_engine
from pumpswap.exceptions import ErrorKind, PumpSwapError
from pumpswap.protocol.jito import MAX_BUNDLE_TRANSACTIONS, calculate_bundle_fee
from pumpswap.protocol.metadata import MetadataPolicy, MetadataValidator, TokenMetadata
from pumpswap.trading.engine import BuyRequest, CreateTokenRequest, SellRequest, TradingEngine

# Configure logging with file handler for post-mortem analysis
LOG_DIR = os.getenv("PUMPSWAP_LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("PumpSwapAPI")

if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
    _file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, "pumpswap_api.log"),
        maxBytes=10_000_000,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    _file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)8s | %(name)s | %(message)s"
    ))
    logger.addHandler(_file_handler)


# ===================================================================
#                          RATE LIMITER
# ===================================================================

class RateLimiter:
    """
    In-memory sliding-window rate limiter.
    Tracks requests per client IP within a rolling time window.
    """

    def __init__(self, max_requests: int = 60, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        # IP -> list of request timestamps
        self._requests: Dict[str, List[float]] = defaultdict(list)

    def is_allowed(self, client_ip: str) -> bool:
        """Return True if the request is within the rate limit."""
        now = time.monotonic()
        cutoff = now - self.window_seconds

        timestamps = self._requests[client_ip]
        self._requests[client_ip] = [t for t in timestamps if t > cutoff]

        if len(self._requests[client_ip]) >= self.max_requests:
            return False

        self._requests[client_ip].append(now)
        return True

    def remaining(self, client_ip: str) -> int:
        """Requests remaining in the current window."""
        now = time.monotonic()
        cutoff = now - self.window_seconds
        active = [t for t in self._requests.get(client_ip, []) if t > cutoff]
        return max(0, self.max_requests - len(active))


_rate_limit_max = int(os.getenv("PUMPSWAP_RATE_LIMIT_MAX", "60"))
_rate_limit_window = int(os.getenv("PUMPSWAP_RATE_LIMIT_WINDOW", "60"))
rate_limiter = RateLimiter(max_requests=_rate_limit_max, window_seconds=_rate_limit_window)

# API key for authentication (loaded from environment)
PUMPSWAP_API_KEY = os.getenv("PUMPSWAP_API_KEY", "")
PUMPSWAP_DEV_MODE = os.getenv("PUMPSWAP_DEV_MODE", "false").lower() == "true"

# Engine shared by every request; built on startup, replaceable in tests
engine: Optional[TradingEngine] = None
started_at: Optional[datetime] = None

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.WALLET: 404,
    ErrorKind.INSUFFICIENT_LIQUIDITY: 422,
    ErrorKind.RELAY: 502,
    ErrorKind.RPC: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.CONFIG: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    global engine, started_at
    logger.info("PUMP SWAP API server starting...")
    if not PUMPSWAP_API_KEY:
        if PUMPSWAP_DEV_MODE:
            logger.warning(
                "PUMPSWAP_API_KEY not set and PUMPSWAP_DEV_MODE=true. "
                "API is running WITHOUT authentication."
            )
        else:
            logger.warning(
                "PUMPSWAP_API_KEY not set. Protected endpoints will return 500. "
                "Set PUMPSWAP_API_KEY or PUMPSWAP_DEV_MODE=true."
            )
    if engine is None:
        config = BotConfig()
        engine = build_engine(config, PumpSwapLogger(config))
    started_at = datetime.now()
    yield
    logger.info("PUMP SWAP API server shutting down...")
    if engine is not None:
        await engine.close()


app = FastAPI(
    title="PUMP SWAP API",
    description="pump.fun token creation and Jito-bundled trading",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-API-Key", "Authorization"],
)


# ===================================================================
#                        AUTHENTICATION MIDDLEWARE
# ===================================================================

@app.middleware("http")
async def verify_api_key(request: Request, call_next):
    """Require X-API-Key header on all endpoints except health checks."""
    public_paths = {"/", "/health", "/docs", "/openapi.json", "/redoc"}
    if request.url.path in public_paths:
        return await call_next(request)

    if not PUMPSWAP_API_KEY:
        if PUMPSWAP_DEV_MODE:
            return await call_next(request)
        return JSONResponse(
            status_code=500,
            content=envelope(
                error="PUMPSWAP_API_KEY not configured. Set it or enable PUMPSWAP_DEV_MODE=true."
            ),
        )

    provided_key = request.headers.get("X-API-Key", "")
    if provided_key != PUMPSWAP_API_KEY:
        return JSONResponse(status_code=403, content=envelope(error="Invalid or missing API key"))

    return await call_next(request)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Enforce per-IP rate limiting on all requests."""
    client_ip = request.client.host if request.client else "unknown"

    if not rate_limiter.is_allowed(client_ip):
        logger.warning(f"Rate limit exceeded for {client_ip}")
        return JSONResponse(
            status_code=429,
            content=envelope(error="Rate limit exceeded. Try again later."),
            headers={"Retry-After": str(rate_limiter.window_seconds)},
        )

    response = await call_next(request)
    response.headers["X-RateLimit-Remaining"] = str(rate_limiter.remaining(client_ip))
    return response


# ===================================================================
#                            PYDANTIC MODELS
# ===================================================================

class ApiResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class CreateTokenBody(BaseModel):
    """Token launch. Private keys are never accepted over the API."""
    name: str
    symbol: str
    description: str
    image_url: str
    telegram_link: str = ""
    twitter_link: str = ""
    user_id: int
    wallet_id: str = Field(..., description="Wallet id or name owned by user_id")


# Per-wallet trade amount; NaN and infinities never reach the engine
TradeAmount = Annotated[float, Field(gt=0, allow_inf_nan=False)]


class BuyBody(BaseModel):
    token_address: str
    sol_amounts: List[TradeAmount] = Field(..., min_length=1, max_length=MAX_BUNDLE_TRANSACTIONS)
    wallet_ids: List[str] = Field(..., min_length=1, max_length=MAX_BUNDLE_TRANSACTIONS)
    user_id: int
    wait_for_confirmation: bool = True


class SellBody(BaseModel):
    token_address: str
    token_amounts: List[TradeAmount] = Field(..., min_length=1, max_length=MAX_BUNDLE_TRANSACTIONS)
    wallet_ids: List[str] = Field(..., min_length=1, max_length=MAX_BUNDLE_TRANSACTIONS)
    user_id: int
    wait_for_confirmation: bool = True


class BuyQuoteBody(BaseModel):
    token_address: str
    sol_amount: float = Field(..., gt=0, allow_inf_nan=False)


class SellQuoteBody(BaseModel):
    token_address: str
    token_amount: float = Field(..., gt=0, allow_inf_nan=False)


class MetadataBody(BaseModel):
    name: str = ""
    symbol: str = ""
    description: str = ""
    image_url: str = ""
    telegram_link: str = ""
    twitter_link: str = ""
    require_social_links: Optional[bool] = None


# ===================================================================
#                            HELPER FUNCTIONS
# ===================================================================

def envelope(data: Any = None, error: Optional[str] = None, **extra) -> Dict[str, Any]:
    body = ApiResponse(success=error is None, data=data, error=error).model_dump()
    body.update(extra)
    return body


def get_engine() -> TradingEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Trading engine not initialised")
    return engine


@app.exception_handler(PumpSwapError)
async def pumpswap_error_handler(request: Request, exc: PumpSwapError):
    status = STATUS_BY_KIND.get(exc.kind, 500)
    logger.info(f"{request.url.path} -> {status} ({exc.kind.value}): {exc}")
    return JSONResponse(
        status_code=status,
        content=envelope(
            data={"errors": getattr(exc, "errors", None)} if getattr(exc, "errors", None) else None,
            error=str(exc),
            error_kind=exc.kind.value,
        ),
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content=envelope(error=str(exc.detail)))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=envelope(data={"errors": errors}, error="Invalid request body",
                         error_kind=ErrorKind.VALIDATION.value),
    )


# ===================================================================
#                            API ENDPOINTS
# ===================================================================

@app.get("/")
async def root():
    return envelope({
        "service": "PUMP SWAP API",
        "version": __version__,
        "status": "operational",
    })


@app.get("/health")
async def health_check():
    return envelope({
        "status": "healthy",
        "engine_ready": engine is not None,
        "uptime_seconds": (datetime.now() - started_at).total_seconds() if started_at else None,
        "timestamp": datetime.now().isoformat(),
    })


@app.get("/api/status")
async def get_status():
    """Configuration summary and relay statistics."""
    current = get_engine()
    config = current.config
    return envelope({
        "rpc_url": config.rpc_url,
        "bundle_url": current.bundles.bundle_url,
        "tip_account": current.bundles.tip_account,
        "tip_lamports": current.bundles.tip_lamports,
        "trading_fee": config.trading_fee,
        "fee_percentage": config.fee_percentage,
        "min_sol_amount": config.min_sol_amount,
        "max_wallets_per_bundle": config.max_wallets_per_bundle,
        "require_social_links": config.require_social_links,
        "relay_stats": await current.bundles.get_bundle_stats(),
    })


@app.post("/api/token/create")
async def create_token(body: CreateTokenBody):
    metadata = TokenMetadata(
        name=body.name,
        symbol=body.symbol,
        description=body.description,
        image_url=body.image_url,
        telegram_link=body.telegram_link,
        twitter_link=body.twitter_link,
    )
    result = await get_engine().create_token(CreateTokenRequest(
        metadata=metadata, user_id=body.user_id, wallet_id=body.wallet_id
    ))
    logger.info(f"Token {result.token_address} created for user {body.user_id}")
    return envelope(result.to_dict())


@app.post("/api/bundle/buy")
async def bundle_buy(body: BuyBody):
    result = await get_engine().buy(
        BuyRequest(
            token_address=body.token_address,
            sol_amounts=body.sol_amounts,
            wallet_ids=body.wallet_ids,
            user_id=body.user_id,
        ),
        wait_for_confirmation=body.wait_for_confirmation,
    )
    return trade_response(result)


@app.post("/api/bundle/sell")
async def bundle_sell(body: SellBody):
    result = await get_engine().sell(
        SellRequest(
            token_address=body.token_address,
            token_amounts=body.token_amounts,
            wallet_ids=body.wallet_ids,
            user_id=body.user_id,
        ),
        wait_for_confirmation=body.wait_for_confirmation,
    )
    return trade_response(result)


def trade_response(result) -> JSONResponse:
    if result.success:
        return JSONResponse(content=envelope(result.to_dict()))
    status = STATUS_BY_KIND.get(result.error_kind, 502)
    return JSONResponse(
        status_code=status,
        content=envelope(
            result.to_dict(),
            error=result.error,
            error_kind=result.error_kind.value if result.error_kind else None,
        ),
    )


@app.get("/api/bundle/status/{bundle_id}")
async def bundle_status(bundle_id: str):
    bundle = await get_engine().get_bundle_status(bundle_id)
    return envelope(bundle.to_dict())


@app.get("/api/bundle/recent/{wallet_address}")
async def recent_bundles(wallet_address: str, limit: int = 10):
    if not 1 <= limit <= 100:
        raise HTTPException(status_code=400, detail="limit must be 1-100")
    bundles = await get_engine().get_recent_bundles(wallet_address, limit)
    return envelope({"wallet": wallet_address, "bundles": bundles})


@app.get("/api/bundle/fee/{count}")
async def bundle_fee(count: int):
    if not 1 <= count <= MAX_BUNDLE_TRANSACTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Transaction count must be 1-{MAX_BUNDLE_TRANSACTIONS}",
        )
    return envelope({"transactions": count, "fee_sol": calculate_bundle_fee(count)})


@app.post("/api/quote/buy")
async def quote_buy(body: BuyQuoteBody):
    quote = await get_engine().quote_buy(body.token_address, body.sol_amount)
    return envelope(quote.__dict__)


@app.post("/api/quote/sell")
async def quote_sell(body: SellQuoteBody):
    quote = await get_engine().quote_sell(body.token_address, body.token_amount)
    return envelope(quote.__dict__)


@app.post("/api/metadata/validate")
async def validate_metadata(body: MetadataBody):
    if body.require_social_links is not None:
        validator = MetadataValidator(MetadataPolicy(require_social_links=body.require_social_links))
    elif engine is not None:
        validator = engine.validator
    else:
        validator = MetadataValidator()
    result = validator.validate(TokenMetadata(
        name=body.name,
        symbol=body.symbol,
        description=body.description,
        image_url=body.image_url,
        telegram_link=body.telegram_link,
        twitter_link=body.twitter_link,
    ))
    return envelope({
        "is_valid": result.is_valid,
        "errors": result.errors,
        "warnings": result.warnings,
    })


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
