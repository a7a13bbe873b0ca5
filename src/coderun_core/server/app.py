"""ASGI application for standalone deployment."""

from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from coderun_core.orchestrator import Orchestrator


def create_app(orchestrator: "Orchestrator") -> Starlette:
    """Create the ASGI application.

    Args:
        orchestrator: The configured Orchestrator instance

    Returns:
        Starlette application
    """
    from coderun_core.server.routes import create_routes

    routes = create_routes(orchestrator)

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=orchestrator.config.server.cors_origins or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ]

    return Starlette(
        routes=routes,
        middleware=middleware,
    )
