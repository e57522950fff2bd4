"""FastAPI dependencies."""
from fastapi import HTTPException, Request

from matchchat.context import ChatAppContext


def get_context(request: Request) -> ChatAppContext:
    """Return the chat context created by the application lifespan."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Chat context is not ready")
    return context
