from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI

from backend import storage
from backend.routes import router
from npc_council.config import Settings, load_settings
from npc_council.providers import build_providers

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app(
    settings: Settings | None = None,
    providers: dict[str, Any] | None = None,
) -> FastAPI:
    """Build the app. Tests pass their own settings and stub providers."""
    resolved = settings or load_settings()
    storage.init_storage(resolved.scenarios_dir)

    app = FastAPI(title="NPC Council")
    app.state.settings = resolved
    app.state.providers = providers if providers is not None else build_providers(resolved)
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (reads settings from the environment)
app = create_app()
