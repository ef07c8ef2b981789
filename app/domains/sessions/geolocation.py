"""
File: app/domains/sessions/geolocation.py
Description: IP 地理定位 (ipstack)

本模块负责：
1. Geolocator: 地理定位协作方接口，locate(ip) 永不抛出异常
2. IpstackGeolocator: 通过共享 httpx 客户端调用 ipstack，超时受限
   - 私有 / 回环 / 保留地址、未配置 API Key、请求失败 一律返回 "Unknown Location"

Author: jinmozhe
Created: 2026-10-19
"""

import ipaddress

import httpx

from app.core.logging import logger

UNKNOWN_LOCATION = "Unknown Location"


def is_public_ip(ip: str | None) -> bool:
    if not ip:
        return False
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (
        addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local
    )


class Geolocator:
    """地理定位接口"""

    async def locate(self, ip: str | None) -> str:
        return UNKNOWN_LOCATION


class IpstackGeolocator(Geolocator):
    """ipstack 地理定位实现"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None,
        base_url: str = "http://api.ipstack.com",
        timeout: float = 3.0,
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def locate(self, ip: str | None) -> str:
        if not self.api_key or not is_public_ip(ip):
            return UNKNOWN_LOCATION

        try:
            response = await self.client.get(
                f"{self.base_url}/{ip}",
                params={"access_key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.bind(error=type(e).__name__).warning("Geolocation lookup failed")
            return UNKNOWN_LOCATION

        # ipstack 出错时仍返回 200，错误信息在 body 中
        if not isinstance(payload, dict) or payload.get("success") is False:
            logger.warning("Geolocation provider returned an error payload")
            return UNKNOWN_LOCATION

        parts = [
            payload.get(key) for key in ("city", "region_name", "country_name")
        ]
        known = [str(p) for p in parts if p]
        return ", ".join(known) if known else UNKNOWN_LOCATION
