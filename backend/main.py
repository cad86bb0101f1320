import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from backend/.env
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

# Import after dotenv is loaded
from backend.core.config import settings, validate_config  # noqa: E402
from backend.core.logging import configure_logging  # noqa: E402
from backend.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from backend.core.validation import validate_env  # noqa: E402
from backend.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from backend.core.outbox import set_outbox  # noqa: E402
from backend.api import admin, health, leaderboards, missions, streaks  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("gm")
    logger.info("Starting gamification backend...")
    import time
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        # Drain pending side effects before the worker thread dies with the process
        set_outbox(None)
        logging.getLogger("gm").info("Stopping gamification backend...")


app = FastAPI(title="GM - Missions, Streaks & Leaderboards", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(streaks.router, tags=["streaks"])
app.include_router(missions.router, tags=["missions"])
app.include_router(leaderboards.router, tags=["leaderboards"])
app.include_router(admin.router)
app.include_router(health.root_router)
