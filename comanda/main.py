import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from comanda.core.config import AUTO_CREATE_SCHEMA, ENV
from comanda.core.database import Base, engine
from comanda.core.logging_setup import configure_logging
from comanda.middleware.observability import ObservabilityMiddleware
import comanda.models  # garante que os models são importados antes do create_all

from comanda.routers.internal_metrics import router as internal_metrics_router
from comanda.routers.webhook import router as webhook_router

configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)
        logger.info("Schema criado/verificado via create_all (ENV=%s)", ENV)
    yield


app = FastAPI(title="Comanda Agent API", lifespan=lifespan)

app.add_middleware(ObservabilityMiddleware)

app.include_router(webhook_router)
app.include_router(internal_metrics_router)


@app.get("/health")
def health():
    return {"status": "ok"}
