"""
HTTP transport to the remote backend.

Every action is a GET against the single backend URL with the action name and
its parameters in the query string. Structured parameters are JSON-encoded.
Redirects are followed: the deployed endpoint answers with a 302 to the
host that serves the result.
The backend replies with a JSON body; ``success: false`` in that body means
the request was rejected.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from bayboard.errors import (
    ApplicationError,
    ConfigError,
    HTTPError,
    NetworkError,
    RequestTimeoutError,
)

logger = logging.getLogger("transport")


def validate_endpoint(url: Optional[str]) -> httpx.URL:
    """
    Check the configured backend URL.

    Raises:
        ConfigError: If the URL is missing, not http(s), or has no host
    """
    if not url or not url.strip():
        raise ConfigError("Backend URL is not configured (set BACKEND_URL)")
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigError(f"Backend URL is malformed: {e}")
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigError(f"Backend URL is malformed: {url!r}")
    return parsed


def encode_params(action: str, params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Build the query string for an action, JSON-encoding structured values."""
    query = {"action": action}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            query[key] = json.dumps(value)
        elif isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


class RemoteTransport:
    """
    One physical round trip per call.

    Owns an httpx.AsyncClient unless one is injected. The timeout passed to
    ``call`` is a hard deadline for the whole round trip.
    """

    def __init__(
        self,
        backend_url: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.backend_url = backend_url
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def call(
        self,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: float = 15.0,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one action and classify the outcome.

        Returns:
            Parsed JSON body

        Raises:
            ConfigError, RequestTimeoutError, NetworkError, HTTPError,
            ApplicationError
        """
        url = validate_endpoint(self.backend_url)
        headers = {"Cache-Control": "no-cache"}
        if request_id:
            headers["X-Request-ID"] = request_id

        try:
            response = await asyncio.wait_for(
                self._get_client().get(
                    url,
                    params=encode_params(action, params),
                    headers=headers,
                    timeout=timeout,
                    follow_redirects=True,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise RequestTimeoutError(
                f"{action} timed out after {timeout:g}s", action, request_id
            )
        except httpx.RequestError as e:
            raise NetworkError(
                f"{action} could not reach backend: {e}", action, request_id
            )

        if not response.is_success:
            raise HTTPError(
                response.status_code,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                action,
                request_id,
            )

        try:
            body = response.json()
        except ValueError:
            raise ApplicationError(
                f"{action} returned a non-JSON body", action, request_id
            )

        if isinstance(body, dict) and body.get("success") is False:
            raise ApplicationError(
                body.get("error") or "Unknown error", action, request_id
            )
        return body

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
