"""agentviz FastAPI backend, main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentviz import config
from agentviz.observability import initialize as initialize_observability, shutdown as shutdown_observability
from agentviz.routers.sessions import agent_tasks_router, get_dismissed_store, sessions_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("agentviz")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("agentviz backend starting up")
    initialize_observability(app)
    logger.info(
        "Reading local sessions from %s (remote tasks %s)",
        config.SESSION_STATE_DIR,
        "enabled" if config.REMOTE_ENABLED else "disabled",
    )

    yield

    logger.info("agentviz backend shutting down")
    shutdown_observability(app)


app = FastAPI(
    title="agentviz API",
    description="Session board for Copilot coding-agent tasks and local CLI sessions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)
app.include_router(agent_tasks_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "localSessions": "present" if config.SESSION_STATE_DIR.is_dir() else "missing",
        "remote": "enabled" if config.REMOTE_ENABLED else "disabled",
        "dismissed": len(get_dismissed_store().snapshot()),
    }


def run() -> None:
    import uvicorn

    uvicorn.run("agentviz.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
