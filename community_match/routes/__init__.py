from fastapi import APIRouter, FastAPI

from .behavior import router as behavior_router, scaffold_router as behavior_scaffold_router
from .match import router as match_router, scaffold_router as match_scaffold_router
from .network import router as network_router, scaffold_router as network_scaffold_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(match_router, tags=["matches"])
    app.include_router(behavior_router, tags=["behavior"])
    app.include_router(network_router, tags=["network"])

    app.include_router(match_scaffold_router, prefix="/_scaffold/match", tags=["scaffold-match"])
    app.include_router(behavior_scaffold_router, prefix="/_scaffold/behavior", tags=["scaffold-behavior"])
    app.include_router(network_scaffold_router, prefix="/_scaffold/network", tags=["scaffold-network"])


__all__ = ["include_modular_routers", "APIRouter"]
