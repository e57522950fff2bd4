"""Session REST API router.

Endpoints:
    GET  /session          - Current identity, loading/error and socket state
    POST /session/refresh  - Re-verify the session cookie
    POST /session/logout   - Log out and drop all chat state
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from matchchat.context import ChatAppContext
from matchchat.deps import get_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


class SessionResponse(BaseModel):
    """Response model for the session state."""
    authenticated: bool
    identity: Optional[Dict[str, Any]] = None
    loading: bool = False
    error: Optional[str] = None
    connection: str
    connectionError: Optional[str] = None


def _session_state(context: ChatAppContext) -> SessionResponse:
    session = context.session
    return SessionResponse(
        authenticated=session.is_authenticated,
        identity=session.identity.model_dump() if session.identity else None,
        loading=session.loading,
        error=session.error,
        connection=context.connections.state.value,
        connectionError=context.connections.last_error,
    )


@router.get("", response_model=SessionResponse)
async def get_session(context: ChatAppContext = Depends(get_context)) -> SessionResponse:
    return _session_state(context)


@router.post("/refresh", response_model=SessionResponse)
async def refresh_session(context: ChatAppContext = Depends(get_context)) -> SessionResponse:
    """Verify the session cookie with the API and reconcile the socket."""
    await context.session.refresh()
    return _session_state(context)


@router.post("/logout", response_model=SessionResponse)
async def logout(context: ChatAppContext = Depends(get_context)) -> SessionResponse:
    """Log out; local state is cleared even if the API call fails."""
    await context.session.logout()
    return _session_state(context)
