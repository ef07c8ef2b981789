"""
File: tests/unit/test_client_info.py
Description: User-Agent 解析与日志脱敏单元测试

Author: jinmozhe
Created: 2026-10-19
"""

import pytest

from app.domains.sessions.client_info import UNKNOWN, parse_user_agent
from app.utils.masking import (
    MASK,
    mask_email,
    mask_identifier,
    mask_phone,
    mask_sensitive_data,
)

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def test_parse_desktop_chrome() -> None:
    info = parse_user_agent(CHROME_MAC)

    assert info.browser == "Chrome"
    assert info.os == "Mac OS X"
    assert info.device == "Mac"


@pytest.mark.parametrize("ua", [None, ""])
def test_parse_missing_user_agent(ua: str | None) -> None:
    info = parse_user_agent(ua)
    assert (info.device, info.os, info.browser) == (UNKNOWN, UNKNOWN, UNKNOWN)


def test_parse_unrecognized_user_agent() -> None:
    info = parse_user_agent("curl-like-thing")

    assert info.os == UNKNOWN
    assert info.device == UNKNOWN


# ------------------------------------------------------------------------------
# Masking
# ------------------------------------------------------------------------------


def test_mask_email() -> None:
    assert mask_email("alice@example.com") == "a***@example.com"
    assert mask_email("a@example.com") == "****@example.com"
    assert mask_email("broken") == MASK


def test_mask_phone() -> None:
    assert mask_phone("+8613800138000") == "+861********00"
    assert mask_phone("123") == MASK


def test_mask_identifier() -> None:
    assert mask_identifier("bob@example.com") == "b***@example.com"
    assert mask_identifier("+15551234567").startswith("+155")


def test_mask_sensitive_data_nested() -> None:
    payload = {
        "email": "carol@example.com",
        "password": "Secret123!",
        "nested": [{"OTP": "123456", "refresh_token": None, "name": "Carol"}],
    }

    masked = mask_sensitive_data(payload)

    assert masked == {
        "email": "c***@example.com",
        "password": MASK,
        "nested": [{"OTP": MASK, "refresh_token": None, "name": "Carol"}],
    }
    assert payload["password"] == "Secret123!"
