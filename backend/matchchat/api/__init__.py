"""REST boundary client.

Services:
    - ApiClient: cookie-carrying async HTTP client with a fixed timeout.
"""
from .client import ApiClient, ApiError, describe_error

__all__ = ["ApiClient", "ApiError", "describe_error"]
