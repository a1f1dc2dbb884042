"""
Model invocation API entrypoint.

Serves:
- /health/live: Liveness probe
- /models: Configured models (no credentials)
- /invoke: Run an invocation to completion
- /invoke/stream: Same, as a text/event-stream of snapshots
- /sessions/{session_id}/stop: Stop the live invocation of a session

Sessions are kept per session_id so a newer request supersedes an older
one for the same caller.

Can be run as a module:
  python -m model_invocation.api
"""

import argparse
import json
import logging
from collections import OrderedDict
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from .config import Preferences
from .lifecycle import ModelSession
from .managed import ManagedService
from .registry import InMemoryModelRegistry, ModelRegistry
from .stream import DONE_SENTINEL

logger = logging.getLogger(__name__)

MAX_SESSIONS = 256


class InvokeRequest(BaseModel):
    """Body of /invoke and /invoke/stream."""

    session_id: str = "default"
    base_prompt: str = ""
    prompt: str = ""
    input: str = ""
    temperature: str = "1.0"
    execute: bool = True
    model_id: Optional[str] = Field(None, description="Explicit model override")


def _default_registry(preferences: Preferences) -> ModelRegistry:
    if preferences.models_file:
        return InMemoryModelRegistry.from_json_file(preferences.models_file)
    return InMemoryModelRegistry()


def create_app(
    registry: Optional[ModelRegistry] = None,
    preferences: Optional[Preferences] = None,
    managed: Optional[ManagedService] = None,
    transport=None,
    max_sessions: int = MAX_SESSIONS,
) -> FastAPI:
    """
    Create FastAPI application.

    At most `max_sessions` sessions are kept; the least recently used one is
    stopped and dropped when a new session_id arrives.
    """
    preferences = preferences or Preferences.from_env()
    registry = registry or _default_registry(preferences)
    sessions: "OrderedDict[str, ModelSession]" = OrderedDict()

    app = FastAPI(
        title="Model Invocation API",
        description="Uniform prompt invocation over configured model backends",
        version="0.1.0",
    )

    def get_session(session_id: str) -> ModelSession:
        session = sessions.get(session_id)
        if session is not None:
            sessions.move_to_end(session_id)
            return session

        while len(sessions) >= max_sessions:
            evicted_id, evicted = sessions.popitem(last=False)
            evicted.stop()
            logger.info(f"Evicted session {evicted_id}", extra={"sessions": len(sessions)})

        session = ModelSession(registry, preferences, managed, transport=transport)
        sessions[session_id] = session
        return session

    def override_for(request: InvokeRequest):
        if request.model_id is None:
            return None
        model = registry.get(request.model_id)
        if model is None:
            raise HTTPException(status_code=404, detail=f"Unknown model: {request.model_id}")
        return model

    @app.get("/health/live")
    async def live():
        """Liveness probe."""
        return {"status": "healthy"}

    @app.get("/models")
    async def models():
        """List configured models without credentials."""
        return {
            "is_loading": registry.is_loading,
            "models": [
                {
                    "id": m.id,
                    "name": m.name,
                    "endpoint": m.endpoint,
                    "output_timing": m.output_timing,
                    "is_default": m.is_default,
                }
                for m in registry.models
            ],
        }

    @app.post("/invoke")
    async def invoke(request: InvokeRequest):
        """Run an invocation and return the settled result."""
        session = get_session(request.session_id)
        result = await session.invoke(
            request.base_prompt,
            request.prompt,
            request.input,
            request.temperature,
            request.execute,
            override_for(request),
        )
        status_code = 200 if result.error is None else 422
        return JSONResponse(content=result.to_dict(), status_code=status_code)

    @app.post("/invoke/stream")
    async def invoke_stream(request: InvokeRequest):
        """Stream snapshots of the invocation as server-sent events."""
        session = get_session(request.session_id)
        model_override = override_for(request)
        session.submit(
            request.base_prompt,
            request.prompt,
            request.input,
            request.temperature,
            request.execute,
            model_override,
        )

        async def event_source():
            async for snapshot in session.updates():
                yield f"data: {json.dumps(snapshot.to_dict())}\n\n"
            yield f"{DONE_SENTINEL}\n\n"

        return StreamingResponse(
            event_source(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.post("/sessions/{session_id}/stop")
    async def stop(session_id: str):
        """Stop the live invocation of a session."""
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        session.stop()
        return session.snapshot().to_dict()

    return app


def main(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Starting Model Invocation API on {host}:{port}")

    if reload:
        uvicorn.run(
            "model_invocation.api:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level="info",
        )
    else:
        uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Model Invocation API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable hot reload")

    args = parser.parse_args()
    main(host=args.host, port=args.port, reload=args.reload)
