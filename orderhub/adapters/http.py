# orderhub/adapters/http.py
# Shared httpx plumbing for REST adapters: lazy per-adapter client + error mapping
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from orderhub.adapters.errors import (
    AlreadyExistsError,
    AuthError,
    ProviderError,
    TransientError,
    ValidationError,
)
from orderhub.metrics import PROVIDER_CALLS, PROVIDER_LATENCY

_ALREADY_HINTS = ("already exists", "already fulfilled", "duplicate", "already been")


def _error_text(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "")[:500]
    if isinstance(data, dict):
        for key in ("statusMessage", "message", "error", "errors", "detail"):
            if data.get(key):
                return str(data[key])[:500]
    return str(data)[:500]


def raise_for_provider(provider: str, resp: httpx.Response) -> None:
    """
    Map an HTTP response to the provider taxonomy:
      401/403            -> AuthError
      408/429/5xx        -> TransientError
      409 / "already..." -> AlreadyExistsError
      other 4xx          -> ValidationError
    """
    status = resp.status_code
    if status < 400:
        return
    text = _error_text(resp)
    msg = f"{provider} HTTP {status}: {text}"
    details = {"http_status": status}

    if status in (401, 403):
        raise AuthError(msg, provider=provider, details=details)
    if status in (408, 425, 429) or status >= 500:
        raise TransientError(msg, provider=provider, details=details)
    if status == 409 or any(h in text.lower() for h in _ALREADY_HINTS):
        raise AlreadyExistsError(msg, provider=provider)
    raise ValidationError(msg, provider=provider, details=details)


class HttpProviderClient:
    """
    Mixin for REST adapters.

    - the httpx.AsyncClient is created on first use and reused until aclose()
    - transport failures / timeouts surface as TransientError
    """

    name: str = ""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._log = logging.getLogger(f"orderhub.adapters.{self.name or 'http'}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, path: str, *, call: str, **kwargs: Any) -> httpx.Response:
        started = time.perf_counter()
        outcome = "error"
        try:
            try:
                resp = await self._get_client().request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise TransientError(f"{self.name} {call} timed out", provider=self.name) from e
            except httpx.TransportError as e:
                raise TransientError(f"{self.name} {call} transport error: {e}", provider=self.name) from e
            raise_for_provider(self.name, resp)
            outcome = "ok"
            return resp
        except ProviderError as e:
            outcome = e.code.lower()
            raise
        finally:
            PROVIDER_CALLS.labels(self.name, call, outcome).inc()
            PROVIDER_LATENCY.labels(self.name, call).observe(time.perf_counter() - started)

    async def _json(self, method: str, path: str, *, call: str, **kwargs: Any) -> Dict[str, Any]:
        resp = await self._send(method, path, call=call, **kwargs)
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise TransientError(f"{self.name} {call}: non-JSON response", provider=self.name) from e
        return data if isinstance(data, dict) else {"data": data}
