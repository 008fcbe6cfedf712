"""FastAPI application entry point."""

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before importing runtime config/services.
load_dotenv()

from .logging_config import setup_logging

setup_logging()

import logging

from .config import settings
from .routers import assistants, auto_assist, chat

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Agent Desk API",
    description="Multi-assistant chat backend with AutoAssist orchestration and external API triggers",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(assistants.router)
app.include_router(chat.router)
app.include_router(auto_assist.router)

logger.info("=" * 80)
logger.info("FastAPI Application Started")
logger.info("CORS Origins: %s", settings.cors_origins)
logger.info("Agent Store: %s", settings.agents_store_path)
logger.info("External APIs: %s", "enabled" if settings.enable_external_api else "disabled")
logger.info("=" * 80)


@app.on_event("startup")
async def startup_event():
    """Create storage directories and make sure the AutoAssist record exists."""
    logger.info("=== Application startup initialization ===")

    for directory in (settings.data_dir, settings.images_dir, settings.files_dir):
        directory.mkdir(parents=True, exist_ok=True)

    from .services.agent_store import AgentStore
    from .services.assistant_service import AssistantService

    assistants = await AssistantService(AgentStore(settings.agents_store_path)).list_assistants()
    logger.info("Loaded %s assistant record(s)", len(assistants))


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
