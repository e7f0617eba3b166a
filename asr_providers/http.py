"""Shared httpx helpers for the provider workflows."""

from __future__ import annotations

import json
from typing import Any

import httpx

from common.config import FetchSettings
from asr_providers.errors import APIError, MalformedResponseError


def new_client(
    settings: FetchSettings,
    transport: httpx.AsyncBaseTransport | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Build the client owned by a single fetch call."""
    return httpx.AsyncClient(
        timeout=settings.request_timeout_s,
        transport=transport,
        headers=headers,
    )


def ensure_success(resp: httpx.Response) -> None:
    if not resp.is_success:
        raise APIError(resp.status_code, resp.text)


def decode_json(resp: httpx.Response, *, allow_empty: bool = False) -> dict[str, Any]:
    """Check the status and decode a JSON object body."""
    ensure_success(resp)
    if allow_empty and not resp.content:
        return {}
    try:
        data = resp.json()
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"failed to parse JSON response: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("expected a JSON object in response")
    return data


def require(mapping: Any, key: str, kind: type | tuple[type, ...], where: str = "response") -> Any:
    """Fetch ``mapping[key]`` and check its type, naming the field on failure."""
    if not isinstance(mapping, dict) or key not in mapping:
        raise MalformedResponseError(f"missing {key} field in {where}")
    value = mapping[key]
    if isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedResponseError(f"invalid {key} field in {where}: {value!r}")
    return value
