import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import api_router
from app.core.config import settings
from app.services.platform_client import build_platform_clients

logging.basicConfig(level=settings.log_level.upper())

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.on_event("startup")
async def _startup() -> None:
    app.state.platform_clients = build_platform_clients(settings)


@app.on_event("shutdown")
async def _shutdown() -> None:
    clients = getattr(app.state, "platform_clients", None)
    if clients is not None:
        await clients.aclose()
        app.state.platform_clients = None


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": f"{settings.app_name} ready"}
