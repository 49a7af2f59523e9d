#!/usr/bin/env python3
"""
浏览器自动化相关的公共工具函数
"""

import asyncio
import logging
import random
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def domain_matches(cookie_domain: str, origin: str) -> bool:
    """判断 cookie domain 是否属于 origin 对应的站点

    cookie domain 可能以 . 开头 (如 .example.com)，两边互为后缀都算匹配。
    """
    provider_domain = urlparse(origin).hostname or ""
    normalized_cookie_domain = (cookie_domain or "").lstrip(".").lower()
    normalized_provider_domain = provider_domain.lstrip(".").lower()

    if not normalized_cookie_domain or not normalized_provider_domain:
        return False

    return (
        normalized_provider_domain == normalized_cookie_domain
        or normalized_provider_domain.endswith("." + normalized_cookie_domain)
        or normalized_cookie_domain.endswith("." + normalized_provider_domain)
    )


def find_cookie(cookies: list[dict], name: str, origin: str) -> str | None:
    """从浏览器 cookies 列表中找到属于 origin 的指定 cookie 值

    Args:
        cookies: Camoufox/Playwright context.cookies() 返回的列表
        name: cookie 名称（如 session）
        origin: 站点 origin（如 https://anyrouter.top）

    Returns:
        cookie 值，找不到时返回 None
    """
    for cookie in cookies or []:
        if not isinstance(cookie, dict):
            continue
        if cookie.get("name") != name or not cookie.get("value"):
            continue
        cookie_domain = cookie.get("domain", "")
        # 未带 domain 的 cookie 直接视为当前站点的
        if not cookie_domain or domain_matches(cookie_domain, origin):
            return str(cookie["value"])
        logger.debug(f"🔴 Filtered cookie: {name} (domain: {cookie_domain})")
    return None


def get_random_delay(min_seconds: float, max_seconds: float) -> float:
    """生成随机延迟时间（模拟真人操作）"""
    if max_seconds <= min_seconds:
        return max(min_seconds, 0.0)
    return random.uniform(min_seconds, max_seconds)


async def random_delay(min_seconds: float, max_seconds: float) -> float:
    """等待随机时间，返回实际等待的秒数"""
    delay = get_random_delay(min_seconds, max_seconds)
    if delay > 0:
        await asyncio.sleep(delay)
    return delay
