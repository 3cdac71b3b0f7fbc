from __future__ import annotations

from typing import Any, Callable

import httpx

from app.core.config import Settings
from app.core.errors import UpstreamError


ErrorExtractor = Callable[[Any], "str | None"]


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
    timeout = httpx.Timeout(settings.http_timeout_seconds)
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        headers={"User-Agent": "weatherdash-api/0.1"},
        follow_redirects=True,
    )


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


async def fetch_json(
    client: httpx.AsyncClient,
    *,
    provider: str,
    url: str,
    params: dict[str, Any],
    extract_error: ErrorExtractor | None = None,
) -> Any:
    """GET ``url`` once and return the decoded JSON body.

    Any transport failure, non-2xx status or undecodable body is raised as
    :class:`UpstreamError`; when the provider sent an error text it is folded
    into the message.
    """
    try:
        resp = await client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise UpstreamError(provider, f"request timed out ({type(exc).__name__})") from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(provider, str(exc) or type(exc).__name__) from exc

    body = _safe_json(resp)
    if resp.status_code < 200 or resp.status_code >= 300:
        detail = extract_error(body) if extract_error and body is not None else None
        raise UpstreamError(
            provider,
            detail or f"upstream status {resp.status_code}",
            upstream_status=resp.status_code,
        )
    if body is None:
        raise UpstreamError(provider, "malformed JSON payload", upstream_status=resp.status_code)
    return body
