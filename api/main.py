"""FastAPI application for anomaly detection endpoints.

This module provides a minimal HTTP API service for:
- GET /health - Liveness check
- POST /anomaly - Evaluate one instrument
- POST /anomaly/batch - Evaluate several instruments
- GET /anomaly - Detector catalog and active thresholds
- GET /anomaly/recent - Recent findings, newest first

Requirements:
- No authentication (local network only)
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api.routes.anomaly import API_VERSION
from api.routes.anomaly import router as anomaly_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Anomaly Detection API",
    description="Real-time statistical anomaly detection for price/volume streams",
    version=API_VERSION,
)

app.include_router(anomaly_router)

_api_start_time = time.time()


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "uptime_seconds": int(time.time() - _api_start_time),
        "version": API_VERSION,
    }


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
