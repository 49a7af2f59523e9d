#!/usr/bin/env python3
"""
在已打开站点页面的浏览器上下文里执行 fetch（带上站点 cookies）
"""

import json
import logging

from utils.browser_utils import find_cookie
from utils.models import FetchResult
from utils.redact import redact_payload_for_log

# 在页面内执行的 fetch，所有异常都在页面里转换成 {error}
FETCH_SCRIPT = """async ({ url, method, headers, body }) => {
    try {
        const init = { method, headers, credentials: 'include' };
        if (body !== null && body !== undefined) {
            init.body = JSON.stringify(body);
        }
        const r = await fetch(url, init);
        const text = await r.text();
        return { status: r.status, text };
    } catch (e) {
        return { error: String((e && e.message) || e) };
    }
}"""


class BrowserFetcher:
    """浏览器内 HTTP 调用执行器，任何失败都通过返回值表达，不抛异常"""

    def __init__(
        self,
        page,
        origin: str,
        account_name: str,
        api_user_key: str = "new-api-user",
        logger: logging.Logger | None = None,
    ):
        self.page = page
        self.origin = origin.rstrip("/")
        self.account_name = account_name
        self.api_user_key = api_user_key
        self.logger = logger or logging.getLogger(__name__)

    def _build_headers(self, api_user: str | int | None, has_body: bool, extra: dict | None) -> dict:
        headers = {"Accept": "application/json, text/plain, */*"}
        if has_body:
            headers["Content-Type"] = "application/json"
        if api_user is not None:
            headers[self.api_user_key] = str(api_user)
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _parse_body(text: str) -> dict:
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    async def fetch(
        self,
        path: str,
        method: str = "GET",
        body: dict | None = None,
        api_user: str | int | None = None,
        headers: dict | None = None,
    ) -> FetchResult:
        """执行一次调用

        Returns:
            FetchResult: HTTP 完成时（包括 4xx/5xx）带 status/data，网络失败时带 error
        """
        method = method.upper()
        url = f"{self.origin}{path}"
        request_headers = self._build_headers(api_user, body is not None, headers)

        self.logger.info(f"🌐 {self.account_name}: {method} {path}")
        if body is not None:
            self.logger.debug(f"🌐 {self.account_name}: request body {redact_payload_for_log(body)}")

        try:
            raw = await self.page.evaluate(
                FETCH_SCRIPT,
                {"url": url, "method": method, "headers": request_headers, "body": body},
            )
        except Exception as e:
            self.logger.warning(f"❌ {self.account_name}: {method} {path} failed: {e}")
            return FetchResult(error=str(e))

        if not isinstance(raw, dict):
            self.logger.warning(f"❌ {self.account_name}: {method} {path} returned unexpected result")
            return FetchResult(error=f"Unexpected fetch result: {raw!r}")

        if raw.get("error") is not None:
            self.logger.warning(f"❌ {self.account_name}: {method} {path} failed: {raw['error']}")
            return FetchResult(error=str(raw["error"]))

        try:
            status = int(raw.get("status"))
        except (TypeError, ValueError):
            self.logger.warning(f"❌ {self.account_name}: {method} {path} returned no status")
            return FetchResult(error="Missing response status")

        text = raw.get("text") or ""
        data = self._parse_body(text)
        self.logger.info(f"📨 {self.account_name}: {method} {path} response status code {status}")
        return FetchResult(status=status, data=data, text=text)

    async def get_cookie(self, name: str) -> str | None:
        """读取当前浏览器上下文中属于站点的 cookie"""
        try:
            cookies = await self.page.context.cookies()
        except Exception as e:
            self.logger.warning(f"⚠️ {self.account_name}: Failed to read browser cookies: {e}")
            return None
        return find_cookie(cookies, name, self.origin)
