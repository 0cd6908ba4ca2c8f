import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from intake.routers import assistants, sessions, stream
from intake.services.llm import get_llm_client
from intake.store import close_store, get_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Intake...")
    get_store()
    logger.info("LLM provider: %s", get_llm_client().provider)
    yield
    close_store()
    logger.info("Intake shut down")


app = FastAPI(
    title="Intake",
    description="Patient intake: surgical history, allergies, medical history and medications with chat assistants",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(stream.router)
app.include_router(sessions.router)
app.include_router(assistants.router)


@app.get("/health")
async def health():
    return {"status": "ok", "sessions": len(get_store())}
