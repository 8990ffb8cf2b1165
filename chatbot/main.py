from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging

from .config import Settings, get_settings
from .database.db import Database, DatabaseInitError
from .database.models import utcnow_iso

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open storage before serving; a failure here aborts startup."""
        try:
            app.state.db = Database(settings.database_path)
        except DatabaseInitError as e:
            logger.error(f"Storage unavailable, refusing to start: {e}")
            raise
        logger.info(f"Database ready at {app.state.db.db_path}")

        yield

        logger.info("Closing database")
        app.state.db.close()

    app = FastAPI(title="Chatbot Backend", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Liveness only: deliberately does not query the database
    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": utcnow_iso(),
        }

    return app


app = create_app()


def run():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
