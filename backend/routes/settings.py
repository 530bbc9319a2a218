"""Health check and provider listing endpoints."""

from fastapi import APIRouter, Request

from npc_council.providers import BACKEND_ALIASES, capabilities

from .models import ProviderInfo

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(request: Request):
    """List registered backends and which calls each supports."""
    providers = request.app.state.providers
    return [
        ProviderInfo(
            id=backend_id,
            aliases=[alias for alias, target in BACKEND_ALIASES.items() if target == backend_id],
            **capabilities(provider),
        )
        for backend_id, provider in providers.items()
    ]
