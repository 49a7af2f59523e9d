#!/usr/bin/env python3
"""
配置管理模块
"""

import json
import logging
import os
from dataclasses import dataclass, field

from utils.models import TokenIntent

logger = logging.getLogger(__name__)


@dataclass
class GatewayConfig:
    """网关（new-api 站点）配置"""

    name: str
    origin: str
    login_path: str = "/api/user/login?turnstile="
    sign_in_path: str = "/api/user/sign_in"
    user_info_path: str = "/api/user/self"
    aff_transfer_path: str = "/api/user/aff_transfer"
    token_path: str = "/api/token/"
    api_user_key: str = "new-api-user"
    # 站点额度单位：quota / quota_divisor = 美元
    quota_divisor: int = 500000
    token_page_size: int = 100
    default_token_name: str = "default"
    default_remain_quota: int = 500000
    # 以该前缀命名的新令牌视为出售令牌
    resale_prefix: str = "出售_"
    # 上传到 key 库时使用的 key_type
    key_type: str = "anyrouter"
    # 邀请奖励划转：无论接口返回成功与否，都按已划转处理
    assume_transfer_applied_regardless_of_ack: bool = True

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "GatewayConfig":
        """从字典创建 GatewayConfig

        配置格式:
        - 基础: {"origin": "https://example.com"}
        - 完整: {"origin": "https://example.com", "api_user_key": "new-api-user", "resale_prefix": "SALE_", ...}
        """
        defaults = cls(name=name, origin=data["origin"])
        return cls(
            name=name,
            origin=str(data["origin"]).rstrip("/"),
            login_path=data.get("login_path", defaults.login_path),
            sign_in_path=data.get("sign_in_path", defaults.sign_in_path),
            user_info_path=data.get("user_info_path", defaults.user_info_path),
            aff_transfer_path=data.get("aff_transfer_path", defaults.aff_transfer_path),
            token_path=data.get("token_path", defaults.token_path),
            api_user_key=data.get("api_user_key", defaults.api_user_key),
            quota_divisor=int(data.get("quota_divisor", defaults.quota_divisor)),
            token_page_size=int(data.get("token_page_size", defaults.token_page_size)),
            default_token_name=data.get("default_token_name", defaults.default_token_name),
            default_remain_quota=int(data.get("default_remain_quota", defaults.default_remain_quota)),
            resale_prefix=data.get("resale_prefix", defaults.resale_prefix),
            key_type=data.get("key_type", defaults.key_type),
            assume_transfer_applied_regardless_of_ack=bool(
                data.get(
                    "assume_transfer_applied_regardless_of_ack",
                    defaults.assume_transfer_applied_regardless_of_ack,
                )
            ),
        )

    def get_token_list_path(self) -> str:
        """获取令牌列表路径（只取第一页）"""
        return f"{self.token_path}?p=0&size={self.token_page_size}"

    def get_token_item_path(self, token_id: int | str) -> str:
        """获取单个令牌路径"""
        return f"{self.token_path.rstrip('/')}/{token_id}"

    def get_console_url(self) -> str:
        """获取控制台 URL（签到接口的 referer）"""
        return f"{self.origin}/console"

    def format_quota(self, quota: int | float | None) -> str:
        """把站点额度换算成美元展示"""
        try:
            value = float(quota or 0) / self.quota_divisor
        except (TypeError, ValueError):
            value = 0.0
        return f"${value:.2f}"


@dataclass
class InventoryConfig:
    """key 库（后台管理）接口配置"""

    base_url: str = ""
    token: str | None = None
    timeout: float = 30.0

    @classmethod
    def load_from_env(cls) -> "InventoryConfig":
        timeout_str = os.getenv("KEY_INVENTORY_TIMEOUT", "")
        try:
            timeout = float(timeout_str) if timeout_str else 30.0
        except ValueError:
            logger.warning(f"⚠️ Invalid KEY_INVENTORY_TIMEOUT: {timeout_str}, using 30s")
            timeout = 30.0
        return cls(
            base_url=os.getenv("KEY_INVENTORY_URL", "").rstrip("/"),
            token=os.getenv("KEY_INVENTORY_TOKEN") or None,
            timeout=timeout,
        )

    def is_configured(self) -> bool:
        return bool(self.base_url)


def _read_float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid {key}: {raw}, using default {default}")
        return default


@dataclass
class AppConfig:
    """应用配置"""

    gateway: GatewayConfig
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    # 账号之间的随机等待区间（秒）
    account_delay_min: float = 5.0
    account_delay_max: float = 7.0
    headless: bool = True
    proxy: dict | None = None

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """从环境变量加载配置"""
        gateway = GatewayConfig(name="anyrouter", origin="https://anyrouter.top")

        # 尝试从环境变量加载自定义网关配置
        gateway_str = os.getenv("GATEWAY")
        if gateway_str:
            try:
                gateway_data = json.loads(gateway_str)
                if not isinstance(gateway_data, dict):
                    logger.warning("⚠️ GATEWAY must be a JSON object, using default gateway")
                else:
                    gateway = GatewayConfig.from_dict(gateway_data.get("name", "custom"), gateway_data)
                    logger.info(f"ℹ️ Loaded custom gateway {gateway.name} ({gateway.origin})")
            except json.JSONDecodeError as e:
                logger.warning(f"⚠️ Failed to parse GATEWAY environment variable: {e}, using default gateway")
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"⚠️ Invalid GATEWAY configuration: {e}, using default gateway")

        delay_min = _read_float_env("ACCOUNT_DELAY_MIN", 5.0)
        delay_max = _read_float_env("ACCOUNT_DELAY_MAX", 7.0)
        if delay_max < delay_min:
            delay_max = delay_min

        headless = os.getenv("HEADLESS", "true").strip().lower() not in ("0", "false", "no", "off")

        return cls(
            gateway=gateway,
            inventory=InventoryConfig.load_from_env(),
            account_delay_min=delay_min,
            account_delay_max=delay_max,
            headless=headless,
            proxy=load_global_proxy(),
        )


def load_global_proxy() -> dict | None:
    """PROXY 支持 JSON 对象（camoufox 格式）或纯 server 地址"""
    proxy_str = os.getenv("PROXY")
    if not proxy_str:
        return None
    try:
        proxy = json.loads(proxy_str)
    except json.JSONDecodeError:
        return {"server": proxy_str}
    return proxy if isinstance(proxy, dict) else {"server": proxy_str}


@dataclass
class AccountConfig:
    """账号配置"""

    username: str
    password: str
    tokens: list[TokenIntent] = field(default_factory=list)
    # key 库中账号记录的 _id
    account_ref: str | None = None
    name: str | None = None

    @classmethod
    def from_dict(cls, data: dict, index: int) -> "AccountConfig":
        """从字典创建 AccountConfig"""
        raw_tokens = data.get("tokens") or []
        tokens = [TokenIntent.from_dict(t) for t in raw_tokens if isinstance(t, dict)]

        account_ref = data.get("account_ref", data.get("_id"))
        name = data.get("name") or data.get("display_name")

        return cls(
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            tokens=tokens,
            account_ref=str(account_ref) if account_ref else None,
            name=name if name else None,
        )

    def get_display_name(self, index: int = 0) -> str:
        """获取显示名称"""
        if self.name:
            return self.name
        return self.username or f"Account {index + 1}"


def load_accounts_from_env(env_key: str = "ACCOUNTS_ANYROUTER") -> list[AccountConfig] | None:
    """从环境变量读取账号列表（JSON 对象或数组）"""
    accounts_str = os.getenv(env_key)
    if not accounts_str:
        logger.error(f"❌ {env_key} environment variable not found")
        return None

    try:
        data = json.loads(accounts_str)
    except json.JSONDecodeError as e:
        logger.error(f"❌ Failed to parse {env_key} as JSON: {e}")
        return None

    if isinstance(data, dict):
        accounts_data = [data]
    elif isinstance(data, list):
        accounts_data = data
    else:
        logger.error(f"❌ {env_key} must be a JSON object or array")
        return None

    accounts: list[AccountConfig] = []
    for i, account in enumerate(accounts_data):
        if not isinstance(account, dict):
            logger.error(f"❌ Account {i + 1} is not a valid object")
            continue
        if not account.get("username") or not account.get("password"):
            logger.error(f"❌ Account {i + 1} missing username/password")
            continue
        accounts.append(AccountConfig.from_dict(account, i))

    if not accounts:
        logger.error("❌ No valid accounts found")
        return None

    logger.info(f"✅ Loaded {len(accounts)} account(s)")
    return accounts
