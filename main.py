"""
Daily Interview Drill API

Run:  uvicorn main:app --reload --port 3001
"""

import logging
import os
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from generation.errors import DrillError
from routers import drill

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")
log = logging.getLogger("generation.pipeline")

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(title="Daily Interview Drill", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    # Wildcard origins cannot be combined with credentials
    allow_credentials=CORS_ALLOW_ORIGINS != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(DrillError)
async def drill_error_handler(request: Request, exc: DrillError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(f"[{exc.kind}] {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "daily-drill-api",
    }


app.include_router(drill.router)
