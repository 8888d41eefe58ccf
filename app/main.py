from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.core import config
from app.core.logging import setup_logging
from app.api.router import api_router
from app.api.routes import client_ws, events, page
from app.services.tracker import Tracker

setup_logging()


def create_app(tracker: Tracker | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting roster tracker")
        app.state.tracker = tracker or Tracker()
        await app.state.tracker.start()
        yield
        await app.state.tracker.stop()
        logger.info("Roster tracker stopped")

    app = FastAPI(
        title="Roster Tracker",
        version="0.1.0",
        lifespan=lifespan,
    )

    # JSON roster
    app.include_router(api_router)
    # Live feed for the page
    app.include_router(events.router)
    # Game clients
    app.include_router(client_ws.router)
    app.include_router(page.router)

    @app.get("/health")
    def health():
        logger.debug("Health check hit")
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT, log_config=None)
