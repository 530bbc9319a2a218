"""Multi-agent session endpoint (server-sent events)."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from npc_council.models import SessionRequest
from npc_council.orchestrator import RequestError, run_session, validate_request

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/multi-agent")
async def multi_agent(request: Request):
    """Run NPC turns for the requested rounds, streamed as `data: {json}` frames.

    Rejected requests get a single JSON error and no stream.
    """
    try:
        body = await request.json()
    except ValueError:
        return _error("Request body must be JSON")

    try:
        session = SessionRequest.model_validate(body)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return _error(f"Invalid request: {problems}")

    providers = request.app.state.providers
    try:
        provider = validate_request(session, providers)
    except RequestError as e:
        logger.info("multi-agent request rejected: %s", e)
        return _error(str(e))

    turn_timeout = request.app.state.settings.turn_timeout

    async def event_stream():
        async for event in run_session(
            session, provider,
            turn_timeout=turn_timeout,
            is_disconnected=request.is_disconnected,
        ):
            yield event.to_sse()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
