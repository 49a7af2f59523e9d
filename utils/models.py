"""账号、令牌与调用结果的数据结构。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


def _as_mapping(data: Any) -> Mapping[str, Any]:
    return data if isinstance(data, Mapping) else {}


def _read_str(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _read_bool(data: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key)
    if isinstance(value, bool):
        return value
    return default


def _read_flag(data: Mapping[str, Any], key: str) -> bool:
    """配置开关：接受 true/1/"true"/"1" 等写法"""
    value = data.get(key)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _read_number(data: Mapping[str, Any], key: str, default: int | float = 0) -> int | float:
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return int(stripped)
        except ValueError:
            try:
                return float(stripped)
            except ValueError:
                return default
    return default


def _read_optional_number(data: Mapping[str, Any], key: str) -> int | float | None:
    if data.get(key) is None:
        return None
    return _read_number(data, key)


def same_id(left: Any, right: Any) -> bool:
    """令牌 id 比较：配置里的 id 可能是字符串，站点返回的是整数"""
    if left is None or right is None:
        return False
    return str(left) == str(right)


@dataclass
class FetchResult:
    """浏览器内一次 fetch 的结果：要么有 status/data，要么有 error"""

    status: int | None = None
    data: dict = field(default_factory=dict)
    error: str | None = None
    text: str = ""

    @property
    def ok(self) -> bool:
        if self.error is not None or self.status is None:
            return False
        return 200 <= self.status < 300 and bool(self.data.get("success"))

    @property
    def message(self) -> str:
        if self.error:
            return self.error
        msg = self.data.get("message") or self.data.get("msg")
        if msg:
            return str(msg)
        if self.status is not None and not 200 <= self.status < 300:
            return f"HTTP {self.status}"
        return "Unknown error"

    @property
    def payload(self) -> Any:
        return self.data.get("data")


@dataclass(frozen=True)
class SessionHandle:
    session_id: str
    api_user: str


@dataclass
class LoginResult:
    """登录结果：session + 登录接口返回的用户数据（用作用户信息的备用）"""

    session: SessionHandle
    user: dict = field(default_factory=dict)


@dataclass
class TokenRecord:
    """站点上的令牌（以站点返回为准）"""

    id: Any
    key: str = ""
    name: str = ""
    unlimited_quota: bool = False
    used_quota: int | float = 0
    remain_quota: int | float = 0
    # 站点返回的完整数据，更新令牌时需要整条回传
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "TokenRecord":
        mapping = _as_mapping(data)
        return cls(
            id=mapping.get("id"),
            key=_read_str(mapping, "key"),
            name=_read_str(mapping, "name"),
            unlimited_quota=_read_bool(mapping, "unlimited_quota"),
            used_quota=_read_number(mapping, "used_quota"),
            remain_quota=_read_number(mapping, "remain_quota"),
            raw=dict(mapping),
        )

    def to_update_payload(self, remain_quota: int | float) -> dict:
        payload = dict(self.raw)
        payload.setdefault("id", self.id)
        payload["remain_quota"] = remain_quota
        return payload

    def project(self) -> dict:
        """对外只暴露必要字段"""
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "unlimited_quota": self.unlimited_quota,
            "used_quota": self.used_quota,
            "remain_quota": self.remain_quota,
            "supplement_quota": 0,
        }


@dataclass
class TokenIntent:
    """账号配置里声明的令牌操作

    - 有 id 且 is_deleted: 删除该令牌
    - 没有 id: 新建令牌
    - 有 id 且 supplement_quota > 0: 给该令牌补充额度
    """

    id: Any = None
    name: str | None = None
    is_deleted: bool = False
    unlimited_quota: bool = False
    remain_quota: int | float | None = None
    supplement_quota: int | float | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "TokenIntent":
        mapping = _as_mapping(data)
        token_id = mapping.get("id")
        name = mapping.get("name")
        return cls(
            id=token_id if token_id not in (None, "", 0) else None,
            name=str(name) if name else None,
            is_deleted=_read_flag(mapping, "is_deleted"),
            unlimited_quota=_read_flag(mapping, "unlimited_quota"),
            remain_quota=_read_optional_number(mapping, "remain_quota"),
            supplement_quota=_read_optional_number(mapping, "supplement_quota"),
        )

    @property
    def wants_delete(self) -> bool:
        return self.id is not None and self.is_deleted

    @property
    def wants_create(self) -> bool:
        return self.id is None

    @property
    def wants_supplement(self) -> bool:
        return self.id is not None and bool(self.supplement_quota) and self.supplement_quota > 0


@dataclass(frozen=True)
class ResaleCandidate:
    name: str
    remain_quota: int | float = 0


@dataclass
class ReconcileOutcome:
    tokens: list[TokenRecord] = field(default_factory=list)
    candidates: list[ResaleCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class PublishResult:
    success: bool
    uploaded_count: int = 0
    error: str | None = None


@dataclass
class Profile:
    """账号信息（以 /api/user/self 为准）"""

    id: Any = None
    username: str = ""
    email: str = ""
    balance: int | float = 0
    used_balance: int | float = 0
    referral_code: str = ""
    bonus_balance: int | float = 0
    tokens: list[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        mapping = _as_mapping(data)
        return cls(
            id=mapping.get("id"),
            username=_read_str(mapping, "username"),
            email=_read_str(mapping, "email"),
            balance=_read_number(mapping, "quota"),
            used_balance=_read_number(mapping, "used_quota"),
            referral_code=_read_str(mapping, "aff_code"),
            bonus_balance=_read_number(mapping, "aff_quota"),
        )


@dataclass(frozen=True)
class RunResult:
    """单个账号的处理结果"""

    username: str
    success: bool
    data: Profile | None = None
