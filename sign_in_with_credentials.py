#!/usr/bin/env python3
"""
使用账号密码通过登录接口登录 New API 站点，拿到 session 和 api_user。

登录请求在已打开站点首页的浏览器里发出，登录成功后 session cookie 会写入浏览器上下文。
"""

import logging

from browser_fetch import BrowserFetcher
from utils.config import GatewayConfig
from utils.models import LoginResult, SessionHandle
from utils.redact import mask_secret


class CredentialsSignIn:
    """使用账号密码完成登录。"""

    SESSION_COOKIE_NAME = "session"

    def __init__(
        self,
        account_name: str,
        gateway_config: GatewayConfig,
        username: str,
        password: str,
        logger: logging.Logger | None = None,
    ):
        self.account_name = account_name
        self.gateway_config = gateway_config
        self.username = username
        self.password = password
        self.logger = logger or logging.getLogger(__name__)

    async def login(self, fetcher: BrowserFetcher) -> LoginResult | None:
        """调用登录接口并读取 session cookie

        Returns:
            LoginResult | None: 登录失败（接口报错、未返回用户 ID、没有 session cookie）时返回 None，不做重试
        """
        self.logger.info(f"ℹ️ {self.account_name}: Calling login API for {self.username}")
        result = await fetcher.fetch(
            self.gateway_config.login_path,
            method="POST",
            body={"username": self.username, "password": self.password},
        )

        if result.error is not None:
            self.logger.error(f"❌ {self.account_name}: Login request failed: {result.error}")
            return None

        if result.status is None or not 200 <= result.status < 300:
            self.logger.error(f"❌ {self.account_name}: Login failed - HTTP {result.status}")
            return None

        if not result.data.get("success"):
            self.logger.error(f"❌ {self.account_name}: Login failed - {result.message}")
            return None

        user = result.payload if isinstance(result.payload, dict) else {}
        api_user = user.get("id")
        if not api_user:
            self.logger.error(f"❌ {self.account_name}: No user id found in login response")
            return None

        self.logger.info(f"✅ {self.account_name}: Login successful, user id: {api_user}")

        session_id = await fetcher.get_cookie(self.SESSION_COOKIE_NAME)
        if not session_id:
            self.logger.error(f"❌ {self.account_name}: Session cookie not found after login")
            return None

        self.logger.info(f"✅ {self.account_name}: Got session cookie {mask_secret(session_id)}")
        return LoginResult(
            session=SessionHandle(session_id=session_id, api_user=str(api_user)),
            user=user,
        )
