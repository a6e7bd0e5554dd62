import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .app.credits.repository import ensure_schema  # noqa: E402
from .app.routes.admin import router as admin_router  # noqa: E402
from .app.routes.credits import router as credits_router  # noqa: E402
from .app.routes.webhooks import router as webhooks_router  # noqa: E402
from .app.services.credits import get_ledger_config  # noqa: E402
from .app_context import close_pool, init_pool  # noqa: E402
from .config import load_database_config  # noqa: E402

logger = logging.getLogger("travel_backend")


def configure_logging(level: int | str = logging.INFO, format_string: str | None = None) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=format_string, stream=sys.stdout, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "credits", "travel_backend"):
        logging.getLogger(name).setLevel(level)


configure_logging(os.getenv("LOG_LEVEL", "INFO").upper())

app = FastAPI(title="Travel Planner Credits API")

_cors_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", get_ledger_config().app_base_url).split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks_router)
app.include_router(credits_router)
app.include_router(admin_router)


@app.on_event("startup")
def _open_database() -> None:
    config = load_database_config()
    init_pool(config)
    if config.auto_migrate:
        ensure_schema()
    logger.info("Credit ledger API started")


@app.on_event("shutdown")
def _close_database() -> None:
    close_pool()


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
