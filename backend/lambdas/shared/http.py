"""
Shared helper for calling vendor AI REST APIs.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from requests import RequestException

from .exceptions import ExternalServiceError


LOGGER = logging.getLogger(__name__)


def post_json(
    *,
    service: str,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout_seconds: float,
    params: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    POST a JSON payload to a vendor endpoint and return the parsed JSON body.
    """
    request_headers = {"Content-Type": "application/json", **headers}
    LOGGER.debug("Calling %s endpoint %s", service, url)
    try:
        response = requests.post(
            url,
            headers=request_headers,
            params=params,
            json=payload,
            timeout=timeout_seconds,
        )
    except RequestException as exc:
        raise ExternalServiceError(f"{service} request failed: {exc}") from exc

    if response.status_code >= 400:
        raise ExternalServiceError(f"{service} returned HTTP {response.status_code}: {response.text[:200]}")

    try:
        data = response.json()
    except ValueError as exc:
        raise ExternalServiceError(f"{service} returned non-JSON payload: {exc}") from exc

    if not isinstance(data, dict):
        raise ExternalServiceError(f"{service} returned unexpected payload type {type(data).__name__}")
    return data


__all__ = ["post_json"]
