import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nodeflow import config
from nodeflow.api.routes import api_router

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan: startup and shutdown events.
    """
    logger.info("Starting nodeflow application...")
    if not config.gemini_api_key():
        logger.warning("GEMINI_API_KEY is not set; LLM nodes will fail")
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down nodeflow application...")


app = FastAPI(
    title="nodeflow",
    description="Workflow execution engine for node graphs of text, media and LLM operations: DAG validation, topological scheduling, per-node execution with retries and run status roll-up.",
    lifespan=lifespan,
)

# Allow Vercel deployments and localhost
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"^https:\/\/.*\.vercel\.app$|^http:\/\/localhost:\d+$|^http:\/\/127\.0\.0\.1:\d+$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(api_router)
