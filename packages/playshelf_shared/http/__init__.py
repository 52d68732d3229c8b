"""Public shared HTTP API for Playshelf packages."""

from .client import AsyncHttpClient, ResponseHook, decode_json
from .errors import (
    HttpClientError,
    HttpError,
    HttpJsonDecodeError,
    HttpRequestError,
    HttpStatusError,
)

__all__ = [
    "AsyncHttpClient",
    "HttpClientError",
    "HttpError",
    "HttpJsonDecodeError",
    "HttpRequestError",
    "HttpStatusError",
    "ResponseHook",
    "decode_json",
]
