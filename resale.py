#!/usr/bin/env python3
"""
出售令牌上传：把本次新建的出售令牌按名称匹配到站点令牌，批量写入 key 库
"""

import logging

from utils.config import AccountConfig, GatewayConfig
from utils.key_inventory import MAX_KEYS_PER_REQUEST, KeyInventoryClient
from utils.models import PublishResult, ResaleCandidate, TokenRecord
from utils.redact import mask_secret


class ResalePublisher:
    def __init__(
        self,
        inventory: KeyInventoryClient,
        gateway_config: GatewayConfig,
        logger: logging.Logger | None = None,
    ):
        self.inventory = inventory
        self.gateway_config = gateway_config
        self.logger = logger or logging.getLogger(__name__)

    def build_records(
        self,
        candidates: list[ResaleCandidate],
        tokens: list[TokenRecord],
        account: AccountConfig,
    ) -> list[dict]:
        """只有匹配到带 key 的站点令牌的候选才会生成记录"""
        records: list[dict] = []
        for candidate in candidates:
            matched = next((t for t in tokens if t.name == candidate.name), None)
            if matched is None or not matched.key:
                self.logger.warning(f"⚠️ {account.username}: Resale token {candidate.name} not found in token list")
                continue

            record = {
                "key": matched.key,
                "key_type": self.gateway_config.key_type,
                "is_sold": False,
                "quota": (candidate.remain_quota or 0) / self.gateway_config.quota_divisor,
                "source_name": f"{account.username or ''}&{candidate.name}",
            }
            if account.account_ref:
                record["account_id"] = account.account_ref
            records.append(record)
        return records

    def publish(
        self,
        candidates: list[ResaleCandidate],
        tokens: list[TokenRecord],
        account: AccountConfig,
    ) -> PublishResult:
        if not candidates:
            return PublishResult(success=True, uploaded_count=0)

        self.logger.info(f"ℹ️ {account.username}: {len(candidates)} resale token(s) to upload")
        records = self.build_records(candidates, tokens, account)
        if not records:
            return PublishResult(success=True, uploaded_count=0)

        uploaded = 0
        for start in range(0, len(records), MAX_KEYS_PER_REQUEST):
            batch = records[start : start + MAX_KEYS_PER_REQUEST]
            result = self.inventory.add_keys(batch)
            if not result.get("success"):
                error = result.get("error")
                self.logger.error(f"❌ {account.username}: Failed to upload resale keys: {error}")
                return PublishResult(success=False, uploaded_count=uploaded, error=error)
            uploaded += len(batch)

        keys = ", ".join(mask_secret(r["key"]) for r in records)
        self.logger.info(f"✅ {account.username}: Uploaded {uploaded} resale key(s): {keys}")
        return PublishResult(success=True, uploaded_count=uploaded)
