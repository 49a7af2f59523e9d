#!/usr/bin/env python3
"""
key 库（后台管理）接口：添加 / 批量添加 / 更新 AI API Key

所有方法返回 {"success": bool, "data": ...} 或 {"success": False, "error": str}，不抛异常。
"""

import json
import logging

import httpx

from utils.config import InventoryConfig

KEY_TYPES = ("coderouter", "anyrouter", "other")
MAX_KEYS_PER_REQUEST = 100
MAX_KEY_LENGTH = 500
MAX_SOURCE_NAME_LENGTH = 200
FORBIDDEN_UPDATE_FIELDS = ("_id", "create_date")
NUMERIC_UPDATE_FIELDS = ("quota", "remain_quota", "used_quota")


def _is_non_negative_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def validate_key_record(record, position: str = "") -> str | None:
    """校验单条 key 记录，返回错误信息；通过时返回 None"""
    prefix = f"{position}的" if position else ""
    if not isinstance(record, dict):
        return f"{prefix}Key数据必须为对象"

    key = record.get("key")
    if not key:
        return f"{prefix}API Key不能为空"
    if not record.get("key_type"):
        return f"{prefix}Key类型不能为空"
    if not isinstance(key, str) or not 1 <= len(key) <= MAX_KEY_LENGTH:
        return f"{prefix}API Key长度必须在1-{MAX_KEY_LENGTH}个字符之间"
    if record.get("key_type") not in KEY_TYPES:
        return f"{prefix}Key类型必须为 {'、'.join(KEY_TYPES[:-1])} 或 {KEY_TYPES[-1]}"
    if record.get("quota") is not None and not _is_non_negative_number(record.get("quota")):
        return f"{prefix}额度必须为非负数"
    source_name = record.get("source_name")
    if source_name is not None and len(str(source_name)) > MAX_SOURCE_NAME_LENGTH:
        return f"{prefix}来源名称不能超过{MAX_SOURCE_NAME_LENGTH}个字符"
    return None


def build_key_item(record: dict) -> dict:
    """补默认值；source_name / account_id 只在提供时才带上"""
    item = {
        "key": record["key"],
        "key_type": record["key_type"],
        "quota": record.get("quota") if record.get("quota") is not None else 0,
        "is_sold": bool(record.get("is_sold", False)),
    }
    if record.get("source_name") is not None:
        item["source_name"] = record["source_name"]
    if record.get("account_id") is not None:
        item["account_id"] = record["account_id"]
    return item


def build_proxy_url(proxy_config: dict | None) -> httpx.URL | None:
    """把浏览器使用的代理配置（server/username/password）转换成 httpx 的代理地址"""
    server = (proxy_config or {}).get("server")
    if not server:
        return None
    url = httpx.URL(server)
    if proxy_config.get("username") and proxy_config.get("password"):
        url = url.copy_with(username=proxy_config["username"], password=proxy_config["password"])
    return url


class KeyInventoryClient:
    """key 库接口客户端"""

    def __init__(
        self,
        config: InventoryConfig,
        *,
        proxy_config: dict | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.proxy_url = build_proxy_url(proxy_config)
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    def _new_httpx_client(self) -> httpx.Client:
        kwargs: dict = {"timeout": self.config.timeout, "base_url": self.config.base_url}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif self.proxy_url is not None:
            kwargs["proxy"] = self.proxy_url
        headers = {"accept": "application/json", "content-type": "application/json"}
        if self.config.token:
            headers["authorization"] = f"Bearer {self.config.token}"
        kwargs["headers"] = headers
        return httpx.Client(**kwargs)

    def _post(self, path: str, payload: dict) -> dict:
        if not self.config.is_configured():
            return {"success": False, "error": "KEY_INVENTORY_URL 未配置"}

        try:
            with self._new_httpx_client() as client:
                resp = client.post(path, json=payload)
        except httpx.HTTPError as e:
            self.logger.warning(f"❌ Key inventory request {path} failed: {e}")
            return {"success": False, "error": str(e)}

        self.logger.info(f"📨 Key inventory {path} response status code {resp.status_code}")
        try:
            json_data = resp.json()
        except json.JSONDecodeError:
            json_data = None

        if not isinstance(json_data, dict):
            return {"success": False, "error": f"HTTP {resp.status_code}: invalid response"}

        if resp.is_success and json_data.get("success"):
            return {"success": True, "data": json_data.get("data")}

        message = json_data.get("message") or json_data.get("error") or f"HTTP {resp.status_code}"
        return {"success": False, "error": str(message)}

    def add_key(self, record: dict) -> dict:
        """添加一个 Key（自动去重由 key 库负责）"""
        error = validate_key_record(record)
        if error:
            return {"success": False, "error": error}
        return self._post("/ai-key-admin/addKey", build_key_item(record))

    def add_keys(self, records: list[dict]) -> dict:
        """批量添加 Key，单次最多 100 个"""
        if not isinstance(records, list):
            return {"success": False, "error": "keys必须是数组"}
        if not records:
            return {"success": False, "error": "keys数组不能为空"}
        if len(records) > MAX_KEYS_PER_REQUEST:
            return {"success": False, "error": f"单次最多添加{MAX_KEYS_PER_REQUEST}个Key"}

        for i, record in enumerate(records):
            error = validate_key_record(record, f"第{i + 1}个Key")
            if error:
                return {"success": False, "error": error}

        return self._post("/ai-key-admin/addKeys", {"keys": [build_key_item(r) for r in records]})

    def update_key_info(self, record_id: str, update_data: dict) -> dict:
        """更新 Key 记录（_id 与 create_date 不允许更新）"""
        if not record_id:
            return {"success": False, "error": "Key记录ID不能为空"}
        if not isinstance(update_data, dict):
            return {"success": False, "error": "更新数据不能为空且必须为对象"}
        if not update_data:
            return {"success": False, "error": "至少需要提供一个要更新的字段"}

        for field_name in FORBIDDEN_UPDATE_FIELDS:
            if field_name in update_data:
                return {"success": False, "error": f"不允许更新 {field_name} 字段"}

        if update_data.get("key_type") is not None and update_data["key_type"] not in KEY_TYPES:
            return {"success": False, "error": f"Key类型必须为 {'、'.join(KEY_TYPES[:-1])} 或 {KEY_TYPES[-1]}"}

        for field_name in NUMERIC_UPDATE_FIELDS:
            if field_name in update_data and not _is_non_negative_number(update_data[field_name]):
                return {"success": False, "error": f"{field_name} 必须为非负数"}

        return self._post("/ai-key-admin/updateKeyInfo", {"_id": record_id, "updateData": update_data})
