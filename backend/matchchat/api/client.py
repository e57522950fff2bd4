"""HTTP client for the MatchChat REST API.

Every call goes through one ``httpx.AsyncClient`` configured with the API
base URL, a JSON content type and the client-side timeout. The session is an
opaque HTTP-only cookie kept in the client's cookie jar; this module never
reads or stores a raw token.

Failures never escape as raw ``httpx`` exceptions. HTTP error statuses,
network errors and timeouts are all converted to :class:`ApiError`, which
carries the server's error message when the payload has one.
"""
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Something went wrong"


class ApiError(Exception):
    """A failed REST boundary call.

    Attributes:
        detail: Message from the server's error payload, if any.
        status_code: HTTP status, or None for network errors and timeouts.
        payload: Decoded error body, if any.
    """

    def __init__(
        self,
        detail: Optional[str],
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(detail or (f"HTTP {status_code}" if status_code else "request failed"))
        self.detail = detail
        self.status_code = status_code
        self.payload = payload

    @property
    def unauthorized(self) -> bool:
        return self.status_code == 401


def describe_error(exc: BaseException, fallback: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Pick the user-visible message for a failed call.

    The server's message wins; otherwise the caller's fallback is used.
    """
    if isinstance(exc, ApiError):
        return exc.detail or fallback
    return str(exc) or fallback


def _error_detail(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class ApiClient:
    """Async REST client bound to one base URL and one cookie jar."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self._request("POST", path, json=json)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("API request: %s %s", method, path)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("API timeout: %s %s", method, path)
            raise ApiError(None) from exc
        except httpx.HTTPError as exc:
            logger.error("API network error: %s %s: %s", method, path, exc)
            raise ApiError(None) from exc

        payload = _decode(response)
        if response.is_error:
            logger.error("API error: %s %s -> %s %s", method, path, response.status_code, payload)
            raise ApiError(_error_detail(payload), response.status_code, payload)

        logger.debug("API response: %s %s", response.status_code, path)
        return payload

    def cookie_header(self) -> Optional[str]:
        """Render the session cookies for the socket handshake."""
        cookies = [f"{cookie.name}={cookie.value}" for cookie in self._client.cookies.jar]
        return "; ".join(cookies) if cookies else None

    async def aclose(self) -> None:
        await self._client.aclose()
