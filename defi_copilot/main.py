import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .api import auth, chat, health, prices, wallet, ws
from .config import settings
from .core.connections import ConnectionRegistry
from .core.formatter import ResponseFormatter
from .core.intent import IntentClassifier
from .core.orchestrator import AgentOrchestrator, derive_platform_address
from .db.session import build_engine, build_session_factory, create_schema
from .db.users import UserStore
from .auth.service import AuthService
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware, register_error_handlers
from .providers.base import MarketDataProvider
from .providers.brian import BrianProvider
from .providers.coingecko import CoingeckoProvider
from .providers.llm import LLMProvider, get_llm_provider
from .services.price_feed import PriceFeedManager

logger = logging.getLogger(__name__)

APP_TITLE = "DeFi Copilot API"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Chat-driven DeFi assistant backend"


def create_app(
    database_url: Optional[str] = None,
    *,
    llm: Optional[LLMProvider] = None,
    market: Optional[MarketDataProvider] = None,
    brian: Optional[BrianProvider] = None,
    price_feed: Optional[PriceFeedManager] = None,
    platform_address: Optional[str] = None,
    check_config: bool = True,
) -> FastAPI:
    """
    Build the application.

    Collaborators are created in the lifespan from settings unless passed in;
    every process-wide object ends up on ``app.state``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        if check_config:
            settings.require_runtime_secrets()

        engine = build_engine(database_url)
        await create_schema(engine)
        users = UserStore(build_session_factory(engine))

        state = app.state
        state.llm = llm or get_llm_provider()
        state.market = market or CoingeckoProvider()
        state.brian = brian or BrianProvider()
        state.price_feed = price_feed or PriceFeedManager()
        state.price_watchers = Counter()
        state.users = users
        state.auth_service = AuthService(users)

        address = platform_address or derive_platform_address(settings.platform_private_key)
        if address is None:
            logger.warning("No platform account configured; transactions need a stored user address")
        state.orchestrator = AgentOrchestrator(
            IntentClassifier(state.llm),
            ResponseFormatter(state.llm),
            state.market,
            state.brian,
            users,
            address,
        )

        state.connections = ConnectionRegistry()
        state.connections.start_heartbeat()
        logger.info("%s started", APP_TITLE)

        try:
            yield
        finally:
            await state.connections.close_all()
            await state.price_feed.close_all()
            await engine.dispose()
            logger.info("%s stopped", APP_TITLE)

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Starlette runs the last added middleware first; the session must be
    # decoded before request logging reads the user id.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.effective_session_secret,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, tags=["Auth"])
    app.include_router(chat.router, tags=["Chat"])
    app.include_router(wallet.router, tags=["Wallet"])
    app.include_router(ws.router, tags=["WebSocket"])
    app.include_router(prices.router, tags=["Prices"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": APP_TITLE,
            "version": APP_VERSION,
            "description": APP_DESCRIPTION,
            "docs": "/docs",
            "health": "/healthz",
            "websocket": "/ws",
        }

    return app


app = create_app()


def serve(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """
    Run the app under uvicorn with WebSocket ping/pong matched to the
    heartbeat interval. A bare ``uvicorn defi_copilot.main:app`` uses
    uvicorn's own 20 s ping defaults instead.
    """
    import uvicorn
    uvicorn.run(
        "defi_copilot.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
        ws_ping_interval=settings.heartbeat_interval_seconds,
        ws_ping_timeout=settings.heartbeat_interval_seconds,
    )


if __name__ == "__main__":
    serve()
