import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from core import config, db
from core.bus import RequestBus
from core.observability import setup_logging
from crud import router as crud_router
from crud.dispatch import EntityRegistry
from crud.errors import register_error_handlers
from entities import default_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.log_level(), config.log_format())

    # Initialize the DB pool once per process. An unreachable database is not
    # fatal: requests fail with the acquisition error until it comes back.
    provider = db.PoolConnectionProvider()
    try:
        await db.init_pool()
    except Exception:
        logger.exception("database_pool_unavailable")
    else:
        await db.check_connection(provider)

    bus = RequestBus(default_timeout=config.bus_request_timeout_s())
    registry = EntityRegistry(bus)
    registry.deploy_all(default_handlers(provider))
    app.state.bus = bus
    app.state.registry = registry
    try:
        yield
    finally:
        await bus.drain()
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

# Allow the front-end dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/health")
def health(request: Request) -> dict:
    registry = getattr(request.app.state, "registry", None)
    entities = registry.entity_names() if registry is not None else []
    return {"status": "ok", "entities": entities}


if config.rest_api_enabled():
    app.include_router(crud_router.router, tags=["crud"])


def serve() -> None:
    uvicorn.run(app, host=config.http_host(), port=config.http_port())


if __name__ == "__main__":
    serve()
