import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from routes.analysis_route import router as analysis_router
from services.analysis.session import AnalysisSession
from services.analysis.session_store import AnalysisSessionStore, SessionFactory
from utils.settings import AnalyzerSettings, get_settings


def create_app(
    settings: Optional[AnalyzerSettings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Optional settings override; defaults to the environment.
        session_factory: Optional factory for new analysis sessions, e.g. with a stub remote client.
    """
    resolved = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize logging and the analysis session store
        and attach them to `app.state`. No API key is read here: every analysis
        supplies its own.
        """
        logging.basicConfig(
            level=resolved.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        factory = session_factory or (lambda: AnalysisSession.from_settings(resolved))
        app.state.settings = resolved
        app.state.session_store = AnalysisSessionStore(factory, idle_ttl=resolved.session_idle_ttl)

        try:
            yield
        finally:
            # Cancel any analysis still running so no task outlives the app.
            await app.state.session_store.close_all()

    app = FastAPI(title="Avalanche Terrain Risk Analyzer", lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting the configured model and open session count.
        """
        store = getattr(request.app.state, "session_store", None)
        return {
            "ok": store is not None,
            "model": resolved.openai_model,
            "sessions": len(store) if store is not None else 0,
        }

    # Register application routers
    app.include_router(analysis_router)

    return app


app = create_app()
