"""
Telegram WebApp init-data validation.

The client hands us the raw initData query string. It is authentic when
HMAC_SHA256(secret, data_check_string) matches its hash field, where
secret = HMAC_SHA256(key="WebAppData", msg=bot_token).
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)


class InitDataError(ValueError):
    """Init data is malformed, forged or stale."""


def data_check_string(pairs: Dict[str, str]) -> str:
    return "\n".join(f"{key}={pairs[key]}" for key in sorted(pairs) if key != "hash")


def sign_init_data(pairs: Dict[str, str], bot_token: str) -> str:
    secret = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(secret, data_check_string(pairs).encode("utf-8"), hashlib.sha256).hexdigest()


def validate_init_data(
    init_data: str,
    bot_token: str,
    max_age_seconds: int = 24 * 60 * 60,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Verify init data and resolve the Telegram user.

    Args:
        init_data: Raw query string from Telegram.WebApp.initData
        bot_token: Token of the bot hosting the WebApp
        max_age_seconds: Freshness window for auth_date
        now: Current unix time in seconds (defaults to time.time())

    Returns:
        {"user_id": str, "username": str}

    Raises:
        InitDataError: with a short reason
    """
    if not bot_token:
        raise InitDataError("Bot token not configured")
    if not init_data:
        raise InitDataError("Missing init data")

    try:
        pairs = dict(parse_qsl(init_data, keep_blank_values=True, strict_parsing=True))
    except ValueError:
        raise InitDataError("Malformed init data")

    received_hash = pairs.get("hash")
    if not received_hash:
        raise InitDataError("Missing hash")

    if not hmac.compare_digest(sign_init_data(pairs, bot_token), received_hash):
        raise InitDataError("Invalid hash")

    try:
        auth_date = int(pairs.get("auth_date", ""))
    except ValueError:
        raise InitDataError("Missing auth_date")

    current = time.time() if now is None else now
    if current - auth_date > max_age_seconds:
        raise InitDataError("Init data expired")

    try:
        user = json.loads(pairs.get("user", ""))
    except json.JSONDecodeError:
        raise InitDataError("Missing user")
    if not isinstance(user, dict) or not user.get("id"):
        raise InitDataError("Missing user")

    username = user.get("username") or user.get("first_name") or f"user{user['id']}"
    return {"user_id": str(user["id"]), "username": username}
