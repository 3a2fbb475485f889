"""FastAPI application main module.

This module defines the FastAPI application for the SmartBuy suggestion
service: health and status endpoints, metrics, error handlers, and the
interaction, suggestion and model routers.
"""

import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from smartbuy import __version__
from smartbuy.api.dependencies import get_engine
from smartbuy.api.logging_config import RequestLoggingMiddleware, setup_logging
from smartbuy.api.metrics import metrics_service
from smartbuy.api.routes import interactions, model, suggestions
from smartbuy.config import EngineConfig
from smartbuy.exceptions import SmartBuyException
from smartbuy.recommender.engine import SuggestionEngine

setup_logging(EngineConfig.from_env().log_level)
logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title="SmartBuy Suggest API",
    description="Purchase-propensity and household-frequency suggestions for shopping lists",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(interactions.router)
app.include_router(suggestions.router)
app.include_router(model.router)


@app.exception_handler(SmartBuyException)
async def smartbuy_exception_handler(request: Request, exc: SmartBuyException) -> JSONResponse:
    """Turn engine exceptions into JSON error responses."""
    logger.warning(
        f"{type(exc).__name__}: {exc.message}",
        extra={"path": str(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error: {exc}",
        extra={"path": str(request.url.path)},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "details": {"error_type": type(exc).__name__},
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def get_status(engine: SuggestionEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Engine status: weight version and record counts."""
    current = engine.weight_store.get()
    return {
        "weights_loaded": current is not None,
        "weights_version": current.version if current else 0,
        "weights_updated_at": current.updated_at.isoformat() if current else None,
        "num_products": len(engine.store.list_product_ids()),
        "num_purchases": engine.store.count_purchases(),
        "num_training_examples": len(engine.store.list_training_examples()),
    }


@app.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Ranking call counts and latency."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "smartbuy.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
