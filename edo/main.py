from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging

from edo.config import settings
from edo.api import console
from edo.tools.edo_client import EdoClient
from edo.workflow.controller import EdoConsole

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(client: Optional[EdoClient] = None) -> FastAPI:
    """Build the console app. Passing a client lets tests point it at a fake backend."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        edo_client = client or EdoClient()
        app.state.console = EdoConsole(edo_client)
        await app.state.console.start()
        logger.info(f"EDO console started against {edo_client.base_url}")
        try:
            yield
        finally:
            app.state.console = None
            await edo_client.aclose()

    app = FastAPI(
        title=settings.CONSOLE_TITLE or "EDO Reconciliation Console",
        description="Incoming EDO documents: line matching, receipts and signatures",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS Config
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Router Registration
    app.include_router(console.router)

    # Health Check
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "environment": settings.ENVIRONMENT}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("edo.main:app", host="0.0.0.0", port=8000, reload=True)
