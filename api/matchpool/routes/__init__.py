from fastapi import APIRouter, FastAPI

from .matches import router as matches_router
from .pools import router as pools_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(pools_router, tags=["pools"])
    app.include_router(matches_router, tags=["matches"])


__all__ = ["include_modular_routers", "APIRouter"]
