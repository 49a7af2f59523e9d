"""测试用的站点 / 浏览器替身。"""

import json
from urllib.parse import urlsplit

ORIGIN = "https://anyrouter.top"
TOKEN_LIST_PATH = "/api/token/?p=0&size=100"


class FakeGateway:
    """模拟 new-api 站点接口（登录、签到、用户信息、划转、令牌）"""

    def __init__(self, users: dict | None = None, tokens: list[dict] | None = None):
        # username -> {"password": ..., "profile": {...}}
        self.users = users or {}
        self.tokens = [dict(t) for t in tokens or []]
        self.logged_in: str | None = None
        self.requests: list[tuple[str, str, dict | None, dict]] = []
        self.next_token_id = 100
        # 这些 (method, path) 返回 success: false
        self.rejected: set[tuple[str, str]] = set()
        # 这些 path 在浏览器 fetch 阶段直接抛异常（模拟网络失败）
        self.broken_paths: set[str] = set()
        self.set_session_cookie = True
        # 更新令牌时站点会把额度减去这个值（模拟站点侧取整）
        self.update_adjustment = 0

    def calls(self, method: str, path: str | None = None) -> list[tuple[str, str, dict | None, dict]]:
        return [r for r in self.requests if r[0] == method and (path is None or r[1] == path)]

    def _reject(self, message: str = "操作失败") -> tuple[int, dict]:
        return 200, {"success": False, "message": message}

    def _current_profile(self) -> dict:
        return dict(self.users[self.logged_in]["profile"])

    def handle(self, method: str, path: str, body: dict | None, headers: dict) -> tuple[int, dict]:
        self.requests.append((method, path, body, headers))

        if (method, path) in self.rejected:
            return self._reject()

        if path.startswith("/api/user/login"):
            user = self.users.get((body or {}).get("username"))
            if not user or user["password"] != (body or {}).get("password"):
                return self._reject("用户名或密码错误")
            self.logged_in = body["username"]
            return 200, {"success": True, "data": dict(user["profile"])}

        if self.logged_in is None:
            return 401, {"success": False, "message": "未登录"}

        if path == "/api/user/sign_in":
            return 200, {"success": True, "message": "签到成功"}

        if path == "/api/user/self":
            return 200, {"success": True, "data": self._current_profile()}

        if path == "/api/user/aff_transfer":
            return 200, {"success": True, "message": ""}

        if method == "GET" and path == TOKEN_LIST_PATH:
            return 200, {"success": True, "data": [dict(t) for t in self.tokens]}

        if method == "POST" and path == "/api/token/":
            token = {
                "id": self.next_token_id,
                "key": f"sk-{self.next_token_id:032d}",
                "name": body["name"],
                "unlimited_quota": bool(body.get("unlimited_quota", False)),
                "used_quota": 0,
                "remain_quota": body.get("remain_quota", 0),
                "expired_time": -1,
                "status": 1,
            }
            self.next_token_id += 1
            self.tokens.append(token)
            return 200, {"success": True, "message": ""}

        if method == "DELETE" and path.startswith("/api/token/"):
            token_id = path.rsplit("/", 1)[-1]
            before = len(self.tokens)
            self.tokens = [t for t in self.tokens if str(t["id"]) != token_id]
            if len(self.tokens) == before:
                return self._reject("令牌不存在")
            return 200, {"success": True, "message": ""}

        if method == "PUT" and path == "/api/token/":
            for token in self.tokens:
                if token["id"] == body.get("id"):
                    token.update(body)
                    token["remain_quota"] = body["remain_quota"] - self.update_adjustment
                    return 200, {"success": True, "data": dict(token)}
            return self._reject("令牌不存在")

        return 404, {"success": False, "message": "not found"}


class FakeContext:
    def __init__(self, gateway: FakeGateway):
        self.gateway = gateway

    async def cookies(self) -> list[dict]:
        cookies = [{"name": "_cfuvid", "value": "cf", "domain": ".anyrouter.top"}]
        if self.gateway.logged_in and self.gateway.set_session_cookie:
            cookies.append({"name": "session", "value": f"session-{self.gateway.logged_in}", "domain": "anyrouter.top"})
        return cookies


class FakePage:
    """只实现 BrowserFetcher / AnyRouterCheckIn 用到的 page 接口"""

    def __init__(self, gateway: FakeGateway, fail_goto: bool = False):
        self.gateway = gateway
        self.context = FakeContext(gateway)
        self.visited: list[str] = []
        self.fail_goto = fail_goto

    async def goto(self, url: str, **kwargs) -> None:
        if self.fail_goto:
            raise RuntimeError("net::ERR_CONNECTION_RESET")
        self.visited.append(url)

    async def evaluate(self, script: str, arg: dict) -> dict:
        parts = urlsplit(arg["url"])
        path = parts.path + (f"?{parts.query}" if parts.query else "")
        if path.split("?")[0] in self.gateway.broken_paths:
            return {"error": "Failed to fetch"}
        status, data = self.gateway.handle(arg["method"], path, arg.get("body"), arg.get("headers") or {})
        return {"status": status, "text": json.dumps(data)}


class FakeBrowser:
    """记录进入/退出次数的浏览器上下文管理器"""

    def __init__(self, page: FakePage):
        self.page = page
        self.entered = 0
        self.exited = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exited += 1
        return False

    async def new_page(self) -> FakePage:
        return self.page


class FakeInventory:
    """记录 add_keys 调用的 key 库替身"""

    def __init__(self, response: dict | None = None):
        self.batches: list[list[dict]] = []
        self.response = response or {"success": True, "data": {"inserted": 0}}

    def add_keys(self, records: list[dict]) -> dict:
        self.batches.append([dict(r) for r in records])
        return self.response
