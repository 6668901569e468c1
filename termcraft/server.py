"""JSON API exposing command generation over HTTP.

``ai serve`` runs this app with uvicorn.  The server generates and
validates commands but never executes them.
"""

from __future__ import annotations

import threading

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .errors import (
    ExecutionError,
    InputError,
    PermissionDeniedError,
    RateLimitError,
    RequestTimeoutError,
    TermcraftError,
    ValidationError,
)
from .session import ChatSession
from .validator import SafetyValidator


def _http_error(exc: TermcraftError) -> HTTPException:
    if isinstance(exc, RateLimitError):
        return HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(int(exc.retry_after + 0.999))},
        )
    if isinstance(exc, (InputError, ValidationError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, RequestTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, ExecutionError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def create_app(session: ChatSession, validator: SafetyValidator) -> FastAPI:
    """Build the FastAPI app around one chat session."""
    app = FastAPI(title="termcraft", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # A session serves one caller at a time.
    lock = threading.Lock()

    @app.post("/generate_command")
    def generate_command(request: dict) -> dict:
        prompt_text = request.get("input") or request.get("prompt")
        if not prompt_text or not isinstance(prompt_text, str):
            raise HTTPException(status_code=400, detail="'input' field must be a non-empty string")
        try:
            with lock:
                response = session.send(prompt_text)
        except TermcraftError as exc:
            raise _http_error(exc)
        allowed, reason = False, "no command in response"
        if response.command:
            allowed, reason = validator.validate(response.command)
        return {
            "command": response.command,
            "full_output": response.full_output,
            "allowed": allowed,
            "reason": reason,
            "tokens_used": response.metadata.get("tokens_used"),
        }

    @app.get("/usage")
    def usage() -> dict:
        return session.usage()

    return app
