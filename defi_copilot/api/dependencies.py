"""
FastAPI dependencies resolving the process-wide service objects.

The objects are built once in the application lifespan and kept on
``app.state``; these accessors hand them to routes and WebSocket handlers.
"""

from starlette.requests import HTTPConnection

from ..core.connections import ConnectionRegistry
from ..core.orchestrator import AgentOrchestrator
from ..db.users import UserStore
from ..services.price_feed import PriceFeedManager


def get_user_store(conn: HTTPConnection) -> UserStore:
    return conn.app.state.users


def get_auth_service(conn: HTTPConnection):
    return conn.app.state.auth_service


def get_orchestrator(conn: HTTPConnection) -> AgentOrchestrator:
    return conn.app.state.orchestrator


def get_connection_registry(conn: HTTPConnection) -> ConnectionRegistry:
    return conn.app.state.connections


def get_price_feed(conn: HTTPConnection) -> PriceFeedManager:
    return conn.app.state.price_feed
