import asyncio
import sys
from pathlib import Path


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from browser_fetch import BrowserFetcher
from fakes import ORIGIN, FakeGateway, FakePage


class ScriptedPage:
    """evaluate 按顺序返回预设结果（或抛出预设异常）"""

    def __init__(self, *results):
        self.results = list(results)
        self.args: list[dict] = []
        self.context = None

    async def evaluate(self, script, arg):
        self.args.append(arg)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_completed_exchange_returns_status_and_data():
    page = ScriptedPage({"status": 200, "text": '{"success": true, "data": {"id": 1}}'})
    fetcher = BrowserFetcher(page, ORIGIN, "acc")

    result = asyncio.run(fetcher.fetch("/api/user/self", api_user="1001"))

    assert result.ok
    assert result.payload == {"id": 1}
    assert page.args[0]["url"] == "https://anyrouter.top/api/user/self"
    assert page.args[0]["headers"]["new-api-user"] == "1001"
    assert "Content-Type" not in page.args[0]["headers"]


def test_http_error_status_is_returned_not_raised():
    page = ScriptedPage({"status": 500, "text": "<html>bad gateway</html>"})
    fetcher = BrowserFetcher(page, ORIGIN, "acc")

    result = asyncio.run(fetcher.fetch("/api/token/", method="post", body={"name": "x"}))

    assert result.status == 500
    assert result.data == {}
    assert result.error is None
    assert not result.ok
    assert page.args[0]["method"] == "POST"
    assert page.args[0]["headers"]["Content-Type"] == "application/json"


def test_transport_failures_become_error_results():
    page = ScriptedPage(
        {"error": "Failed to fetch"},
        RuntimeError("Target page, context or browser has been closed"),
        None,
    )
    fetcher = BrowserFetcher(page, ORIGIN, "acc")

    first = asyncio.run(fetcher.fetch("/api/user/self"))
    second = asyncio.run(fetcher.fetch("/api/user/self"))
    third = asyncio.run(fetcher.fetch("/api/user/self"))

    assert first.error == "Failed to fetch"
    assert "closed" in second.error
    assert third.error is not None
    assert not any(r.ok for r in (first, second, third))


def test_custom_api_user_header_name():
    page = ScriptedPage({"status": 200, "text": '{"success": true}'})
    fetcher = BrowserFetcher(page, ORIGIN, "acc", api_user_key="Veloera-User")

    asyncio.run(fetcher.fetch("/api/user/sign_in", method="POST", api_user=7))

    assert page.args[0]["headers"]["Veloera-User"] == "7"


def test_get_cookie_reads_browser_context():
    gateway = FakeGateway(users={"u": {"password": "p", "profile": {"id": 1}}})
    gateway.logged_in = "u"
    fetcher = BrowserFetcher(FakePage(gateway), ORIGIN, "acc")

    assert asyncio.run(fetcher.get_cookie("session")) == "session-u"
    assert asyncio.run(fetcher.get_cookie("missing")) is None
