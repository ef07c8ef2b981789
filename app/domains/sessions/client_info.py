"""
File: app/domains/sessions/client_info.py
Description: 登录客户端信息解析 (User-Agent / IP)

本模块负责：
1. ClientContext: 从请求中提取 User-Agent 与客户端 IP
2. parse_user_agent: 基于 user-agents 库解析设备 / 系统 / 浏览器
   - 设备优先取型号，其次取操作系统名称，均缺失时为 "Unknown"

Author: jinmozhe
Created: 2026-10-19
"""

from dataclasses import dataclass

from fastapi import Request
from user_agents import parse

from app.core.middleware import get_client_ip

UNKNOWN = "Unknown"

# user-agents 无法识别时返回 "Other"
_UNRECOGNIZED = {"", "Other", "Generic Smartphone", "Generic Feature Phone"}


@dataclass(frozen=True, slots=True)
class ClientContext:
    user_agent: str
    ip: str | None


@dataclass(frozen=True, slots=True)
class ClientInfo:
    device: str
    os: str
    browser: str


def client_context_from_request(request: Request) -> ClientContext:
    return ClientContext(
        user_agent=request.headers.get("user-agent", ""),
        ip=get_client_ip(request),
    )


def _known(value: str | None) -> str | None:
    if value is None or value.strip() in _UNRECOGNIZED:
        return None
    return value.strip()


def parse_user_agent(ua_string: str | None) -> ClientInfo:
    """解析 User-Agent，任何无法识别的字段记为 Unknown。"""
    if not ua_string:
        return ClientInfo(device=UNKNOWN, os=UNKNOWN, browser=UNKNOWN)

    ua = parse(ua_string)
    os_name = _known(ua.os.family)
    browser = _known(ua.browser.family)
    device = _known(ua.device.model) or os_name

    return ClientInfo(
        device=device or UNKNOWN,
        os=os_name or UNKNOWN,
        browser=browser or UNKNOWN,
    )
