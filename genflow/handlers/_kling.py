"""Kling access-key/secret-key token signing."""

from __future__ import annotations

import time
from typing import Optional

import jwt

from ..exceptions import ProviderConfigError
from ..providers.http import RenderedRequest
from .base import set_header

TOKEN_TTL_S = 1800
CLOCK_SKEW_S = 300


def split_api_key(api_key: Optional[str]) -> tuple[str, str]:
    """Split an ``access_key+secret_key`` string."""
    if not api_key:
        raise ProviderConfigError("kling api key is not configured")
    access_key, sep, secret_key = api_key.partition("+")
    if not sep or not access_key or not secret_key:
        raise ProviderConfigError(
            "kling api key must have the form 'access_key+secret_key'"
        )
    return access_key, secret_key


def sign_token(api_key: Optional[str], now: Optional[int] = None) -> str:
    access_key, secret_key = split_api_key(api_key)
    now = int(time.time()) if now is None else now
    payload = {
        "iss": access_key,
        "exp": now + TOKEN_TTL_S,
        "nbf": now - CLOCK_SKEW_S,
        "iat": now - CLOCK_SKEW_S,
    }
    return jwt.encode(
        payload, secret_key, algorithm="HS256", headers={"typ": "JWT"}
    )


def authorize(rendered: RenderedRequest, api_key: Optional[str]) -> None:
    set_header(rendered, "Authorization", f"Bearer {sign_token(api_key)}")
