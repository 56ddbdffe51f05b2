# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from localdeals.core.config import FRONTEND_URL, LOG_LEVEL
from localdeals.core.db import init_models
from localdeals.core.error_handling import register_exception_handlers
from localdeals.middleware.request_logger import RequestLoggerMiddleware
from localdeals.routers import router as api_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Local Deals API",
    description="FastAPI backend for local store deals, redemptions and subscriptions",
    version="0.1.0"
)
# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggerMiddleware)

register_exception_handlers(app)


# Health check endpoint
@app.get("/", tags=["Health"])
async def health_check():
    return {"status": "ok", "message": "Backend is running"}


# Register routers
app.include_router(api_router)


@app.on_event("startup")
async def on_startup():
    await init_models()
