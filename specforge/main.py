import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from specforge.database import close_db, init_db
from specforge.routers import transformations
from specforge.services.transformation import build_transformation_engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting specforge...")
    await init_db()
    logger.info("Database initialized")
    app.state.engine = build_transformation_engine()
    yield
    await close_db()
    logger.info("specforge shut down")


app = FastAPI(
    title="specforge",
    description="Hospital questionnaire to technical implementation specification",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(transformations.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
