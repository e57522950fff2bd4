"""Session store: the authenticated identity and its loading/error state.

The identity comes from the server's "who am I" endpoint, verified through
the HTTP-only session cookie the API client carries. Nothing else writes the
identity; the chat subsystem only observes it through :meth:`subscribe`.

Every settled refresh or logout notifies listeners with ``(previous,
current)``, even when the id is unchanged. The connection manager relies on
that to reopen a connection that failed earlier for the same identity.

Responses that resolve after a newer refresh or logout has started are
discarded, so a slow ``/users/me`` can never resurrect a logged-out session.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from matchchat.api.client import ApiClient, ApiError, describe_error

logger = logging.getLogger(__name__)

SESSION_CHECK_PATH = "/users/me"
LOGOUT_PATH = "/auth/logout"
SESSION_ERROR_MESSAGE = "Failed to verify session"


class Identity(BaseModel):
    """Session-verified profile of the current user.

    Profile attributes beyond ``id``/``email``/``name`` are kept as extras.
    """
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    email: Optional[str] = None
    name: Optional[str] = None


IdentityListener = Callable[[Optional[Identity], Optional[Identity]], Awaitable[None]]


class SessionStore:
    """Holds the current identity; written only by refresh and logout."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api
        self.identity: Optional[Identity] = None
        self.loading = False
        self.error: Optional[str] = None
        self._listeners: List[IdentityListener] = []
        # Bumped by every refresh/logout; a response is applied only if its
        # sequence number is still the latest.
        self._request_seq = 0

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register an identity listener; returns the matching unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> Optional[Identity]:
        """Verify the session cookie and store the resulting identity."""
        self._request_seq += 1
        seq = self._request_seq
        self.loading = True
        self.error = None

        identity: Optional[Identity] = None
        error: Optional[str] = None
        try:
            payload = await self._api.get(SESSION_CHECK_PATH)
            identity = self._parse_identity(payload)
        except ApiError as exc:
            if exc.unauthorized:
                logger.info("Session check: not authenticated")
            else:
                error = describe_error(exc, SESSION_ERROR_MESSAGE)
                logger.warning("Session check failed: %s", error)

        if seq != self._request_seq:
            logger.debug("Discarding stale session check response (seq=%d)", seq)
            return self.identity

        self.error = error
        self.loading = False
        await self._set_identity(identity)
        return identity

    async def logout(self) -> None:
        """Log out on the server (best effort) and always clear local state."""
        self._request_seq += 1
        self.loading = True
        try:
            await self._api.post(LOGOUT_PATH)
        except ApiError as exc:
            logger.error("Logout error: %s", describe_error(exc, "Logout failed"))

        # A refresh started while the logout was in flight must not sign the
        # user back in after the clear below.
        self._request_seq += 1
        self.error = None
        self.loading = False
        await self._set_identity(None)

    def _parse_identity(self, payload: Any) -> Optional[Identity]:
        if not isinstance(payload, dict) or not payload.get("success") or not payload.get("data"):
            return None
        try:
            return Identity.model_validate(payload["data"])
        except ValidationError as exc:
            logger.warning("Session check returned an unusable identity: %s", exc)
            return None

    async def _set_identity(self, identity: Optional[Identity]) -> None:
        previous = self.identity
        self.identity = identity
        if (previous.id if previous else None) != (identity.id if identity else None):
            logger.info(
                "Identity changed: %s -> %s",
                previous.id if previous else None,
                identity.id if identity else None,
            )
        for listener in list(self._listeners):
            await listener(previous, identity)
