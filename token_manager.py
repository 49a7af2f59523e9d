#!/usr/bin/env python3
"""
令牌管理：按账号配置删除/创建令牌、补充额度，并保证账号至少有一个可用令牌
"""

import logging

from browser_fetch import BrowserFetcher
from utils.config import GatewayConfig
from utils.models import (
    ReconcileOutcome,
    ResaleCandidate,
    SessionHandle,
    TokenIntent,
    TokenRecord,
    same_id,
)


class TokenManager:
    """令牌管理类

    所有站点调用互相独立：单个删除/创建/更新失败只记日志，不影响其余令牌的处理，也不重试。
    """

    def __init__(
        self,
        fetcher: BrowserFetcher,
        gateway_config: GatewayConfig,
        account_name: str,
        logger: logging.Logger | None = None,
    ):
        self.fetcher = fetcher
        self.gateway_config = gateway_config
        self.account_name = account_name
        self.logger = logger or logging.getLogger(__name__)

    async def list_tokens(self, session: SessionHandle) -> list[TokenRecord]:
        """获取令牌列表，失败时返回空列表"""
        self.logger.info(f"ℹ️ {self.account_name}: Getting token list")
        result = await self.fetcher.fetch(
            self.gateway_config.get_token_list_path(),
            api_user=session.api_user,
        )

        if not result.ok:
            self.logger.warning(f"⚠️ {self.account_name}: Failed to get token list: {result.message}")
            return []

        payload = result.payload
        # 部分版本把列表放在 data.items 里
        if isinstance(payload, dict):
            payload = payload.get("items") or []
        if not isinstance(payload, list):
            self.logger.warning(f"⚠️ {self.account_name}: Token list has unexpected shape")
            return []

        tokens = [TokenRecord.from_dict(item) for item in payload if isinstance(item, dict)]
        self.logger.info(f"ℹ️ {self.account_name}: Got {len(tokens)} token(s)")
        return tokens

    def build_create_body(
        self,
        name: str | None = None,
        unlimited_quota: bool = False,
        remain_quota: int | float | None = None,
    ) -> dict:
        body = {
            "name": name or self.gateway_config.default_token_name,
            "expired_time": -1,
            "model_limits_enabled": False,
            "model_limits": "",
            "allow_ips": "",
            "group": "default",
        }
        if unlimited_quota:
            body["unlimited_quota"] = True
        else:
            body["remain_quota"] = remain_quota or self.gateway_config.default_remain_quota
        return body

    async def create_token(
        self,
        session: SessionHandle,
        name: str | None = None,
        unlimited_quota: bool = False,
        remain_quota: int | float | None = None,
    ) -> bool:
        body = self.build_create_body(name, unlimited_quota, remain_quota)
        self.logger.info(f"ℹ️ {self.account_name}: Creating token {body['name']}")
        result = await self.fetcher.fetch(
            self.gateway_config.token_path,
            method="POST",
            body=body,
            api_user=session.api_user,
        )

        if result.ok:
            self.logger.info(f"✅ {self.account_name}: Token {body['name']} created")
            return True

        self.logger.warning(f"❌ {self.account_name}: Failed to create token {body['name']}: {result.message}")
        return False

    async def delete_token(self, session: SessionHandle, token_id) -> bool:
        self.logger.info(f"ℹ️ {self.account_name}: Deleting token {token_id}")
        result = await self.fetcher.fetch(
            self.gateway_config.get_token_item_path(token_id),
            method="DELETE",
            api_user=session.api_user,
        )

        if result.ok:
            self.logger.info(f"✅ {self.account_name}: Token {token_id} deleted")
            return True

        self.logger.warning(f"❌ {self.account_name}: Failed to delete token {token_id}: {result.message}")
        return False

    async def update_token(self, session: SessionHandle, payload: dict) -> dict | None:
        """更新令牌（PUT 整条令牌数据），返回站点确认后的令牌数据"""
        token_id = payload.get("id")
        self.logger.info(f"ℹ️ {self.account_name}: Updating token {token_id}")
        result = await self.fetcher.fetch(
            self.gateway_config.token_path,
            method="PUT",
            body=payload,
            api_user=session.api_user,
        )

        if result.ok:
            self.logger.info(f"✅ {self.account_name}: Token {token_id} updated")
            confirmed = result.payload
            return confirmed if isinstance(confirmed, dict) else {}

        self.logger.warning(f"❌ {self.account_name}: Failed to update token {token_id}: {result.message}")
        return None

    def is_resale_name(self, name: str | None) -> bool:
        prefix = self.gateway_config.resale_prefix
        return bool(name) and bool(prefix) and name.startswith(prefix)

    async def _apply_deletions(self, session: SessionHandle, intents: list[TokenIntent]) -> None:
        for intent in intents:
            if intent.wants_delete:
                await self.delete_token(session, intent.id)

    async def _apply_creations(self, session: SessionHandle, intents: list[TokenIntent]) -> list[ResaleCandidate]:
        candidates: list[ResaleCandidate] = []
        for intent in intents:
            if not intent.wants_create:
                continue

            body = self.build_create_body(intent.name, intent.unlimited_quota, intent.remain_quota)
            created = await self.create_token(
                session,
                name=body["name"],
                unlimited_quota=intent.unlimited_quota,
                remain_quota=body.get("remain_quota"),
            )

            if created and self.is_resale_name(intent.name):
                candidates.append(ResaleCandidate(name=intent.name, remain_quota=body.get("remain_quota", 0)))
        return candidates

    async def ensure_token(self, session: SessionHandle) -> list[TokenRecord]:
        """重新获取令牌列表；没有令牌时先创建一个无限额度令牌"""
        tokens = await self.list_tokens(session)
        if tokens:
            return tokens

        self.logger.info(f"ℹ️ {self.account_name}: No token found, creating a fallback unlimited token")
        if await self.create_token(session, unlimited_quota=True):
            tokens = await self.list_tokens(session)
        return tokens

    async def _apply_supplements(
        self,
        session: SessionHandle,
        intents: list[TokenIntent],
        tokens: list[TokenRecord],
    ) -> None:
        supplements = [intent for intent in intents if intent.wants_supplement]
        if not supplements:
            return

        self.logger.info(f"ℹ️ {self.account_name}: {len(supplements)} token(s) need quota supplement")
        for intent in supplements:
            matched = next((t for t in tokens if same_id(t.id, intent.id)), None)
            if matched is None:
                self.logger.warning(f"⚠️ {self.account_name}: Token {intent.id} not found, skip supplement")
                continue

            new_remain_quota = (matched.remain_quota or 0) + intent.supplement_quota
            self.logger.info(
                f"ℹ️ {self.account_name}: Token {matched.id} supplement {intent.supplement_quota} "
                f"-> {new_remain_quota}"
            )
            confirmed = await self.update_token(session, matched.to_update_payload(new_remain_quota))
            if confirmed is None:
                continue

            # 以站点确认的额度为准
            matched.remain_quota = confirmed.get("remain_quota", new_remain_quota)
            matched.raw["remain_quota"] = matched.remain_quota
            self.logger.info(f"✅ {self.account_name}: Token {matched.id} remain quota is now {matched.remain_quota}")

    async def reconcile(self, session: SessionHandle, intents: list[TokenIntent] | None) -> ReconcileOutcome:
        """按顺序执行：删除 -> 创建 -> 保底令牌 -> 补充额度

        Returns:
            ReconcileOutcome: 最终的站点令牌列表 + 本次创建成功的出售令牌
        """
        intents = list(intents or [])
        if intents:
            self.logger.info(f"ℹ️ {self.account_name}: Processing {len(intents)} token config(s)")

        await self._apply_deletions(session, intents)
        candidates = await self._apply_creations(session, intents)

        tokens = await self.ensure_token(session)
        await self._apply_supplements(session, intents, tokens)

        return ReconcileOutcome(tokens=tokens, candidates=candidates)


def project_tokens(tokens: list[TokenRecord]) -> list[dict]:
    """过滤令牌数据，只保留需要的字段"""
    return [token.project() for token in tokens]
