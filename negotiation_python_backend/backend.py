"""
FastAPI application for the negotiation analysis backend.

Run with:
    uvicorn negotiation_python_backend.backend:app
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from negotiation_python_backend.analysis_api import router as analysis_router
from negotiation_python_backend.config import CORS_ALLOWED_ORIGINS, LOG_LEVEL
from negotiation_python_backend.db_session import dispose_engine, init_usage_ledger
from negotiation_python_backend.instrumentation.middleware import RequestTimingMiddleware
from negotiation_python_backend.services.token_budget import TokenLimitExceededError

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("negotiation_backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_usage_ledger()
    yield
    await dispose_engine()


async def token_limit_exceeded_handler(request: Request, exc: TokenLimitExceededError):
    payload = exc.to_dict()
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.warning(f"[BUDGET] 429 for {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=429, content=payload)


def create_app() -> FastAPI:
    app = FastAPI(title="Negotiation Analysis Backend", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestTimingMiddleware)
    app.add_exception_handler(TokenLimitExceededError, token_limit_exceeded_handler)
    app.include_router(analysis_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        return {
            "status": "healthy",
            "service": "negotiation_backend",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
