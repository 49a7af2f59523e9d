#!/usr/bin/env python3
"""
AnyRouterCheckIn 类：登录 → 签到 → 用户信息 → 邀请奖励划转 → 令牌管理 → 出售令牌上传
"""

import dataclasses
import logging

from camoufox.async_api import AsyncCamoufox

from browser_fetch import BrowserFetcher
from resale import ResalePublisher
from sign_in_with_credentials import CredentialsSignIn
from token_manager import TokenManager, project_tokens
from utils.browser_utils import random_delay
from utils.config import AccountConfig, AppConfig
from utils.key_inventory import KeyInventoryClient
from utils.models import Profile, RunResult, SessionHandle


class AnyRouterCheckIn:
    """AnyRouter 账号签到与令牌管理类"""

    # 打开首页后等待页面稳定的时间（秒）
    PAGE_SETTLE_DELAY = (2.0, 3.0)
    PAGE_LOAD_TIMEOUT_MS = 600000

    def __init__(
        self,
        app_config: AppConfig,
        browser_factory=None,
        inventory: KeyInventoryClient | None = None,
        logger: logging.Logger | None = None,
    ):
        """初始化签到管理器

        Args:
                app_config: 应用配置（网关、key 库、账号间隔、代理）
                browser_factory: 返回异步上下文管理器（产出带 new_page() 的浏览器）的可调用对象，默认使用 Camoufox
                inventory: key 库客户端，默认按 app_config.inventory 创建
                logger: 日志记录器
        """
        self.app_config = app_config
        self.gateway_config = app_config.gateway
        self.browser_factory = browser_factory or self._new_browser
        self.logger = logger or logging.getLogger(__name__)
        self.inventory = inventory or KeyInventoryClient(
            app_config.inventory,
            proxy_config=app_config.proxy,
            logger=self.logger,
        )
        self.publisher = ResalePublisher(self.inventory, self.gateway_config, logger=self.logger)

    def _new_browser(self):
        proxy = self.app_config.proxy
        return AsyncCamoufox(
            headless=self.app_config.headless,
            humanize=True,
            locale="zh-CN",
            geoip=True if proxy else False,
            proxy=proxy,
        )

    async def claim_daily_reward(self, fetcher: BrowserFetcher, session: SessionHandle, account_name: str) -> bool:
        """调用签到接口，失败不影响后续流程"""
        self.logger.info(f"ℹ️ {account_name}: Executing check-in")
        result = await fetcher.fetch(
            self.gateway_config.sign_in_path,
            method="POST",
            api_user=session.api_user,
            headers={"Content-Type": "application/json", "referer": self.gateway_config.get_console_url()},
        )

        if result.ok:
            self.logger.info(f"✅ {account_name}: Check-in successful!")
            return True

        self.logger.warning(f"⚠️ {account_name}: Check-in failed - {result.message}")
        return False

    async def fetch_profile(self, fetcher: BrowserFetcher, session: SessionHandle, account_name: str) -> Profile | None:
        self.logger.info(f"ℹ️ {account_name}: Getting user info")
        result = await fetcher.fetch(
            self.gateway_config.user_info_path,
            api_user=session.api_user,
            headers={"referer": self.gateway_config.get_console_url()},
        )

        if not result.ok or not isinstance(result.payload, dict):
            self.logger.warning(f"⚠️ {account_name}: Failed to get user info - {result.message}")
            return None

        profile = Profile.from_dict(result.payload)
        fmt = self.gateway_config.format_quota
        self.logger.info(
            f"✅ {account_name}: User {profile.username} (id {profile.id}, email {profile.email or '-'}), "
            f"Balance: {fmt(profile.balance)}, Used: {fmt(profile.used_balance)}, "
            f"Aff code: {profile.referral_code or '-'}"
        )
        return profile

    async def settle_bonus(
        self,
        fetcher: BrowserFetcher,
        session: SessionHandle,
        profile: Profile,
        account_name: str,
    ) -> Profile:
        """把邀请奖励划转到余额

        assume_transfer_applied_regardless_of_ack 开启时（默认），无论接口是否返回成功，
        都按已划转处理：余额加上奖励、奖励清零，避免下次运行重复划转。
        """
        fmt = self.gateway_config.format_quota
        bonus = profile.bonus_balance
        self.logger.info(f"ℹ️ {account_name}: Transferring aff quota {fmt(bonus)} to balance")

        result = await fetcher.fetch(
            self.gateway_config.aff_transfer_path,
            method="POST",
            body={"quota": bonus},
            api_user=session.api_user,
        )

        if result.ok:
            self.logger.info(f"✅ {account_name}: Aff quota transferred")
        else:
            self.logger.warning(f"❌ {account_name}: Aff quota transfer failed - {result.message}")
            if not self.gateway_config.assume_transfer_applied_regardless_of_ack:
                return profile

        settled = dataclasses.replace(profile, balance=profile.balance + bonus, bonus_balance=0)
        self.logger.info(f"ℹ️ {account_name}: Balance now {fmt(settled.balance)}")
        return settled

    async def _run_in_page(self, page, account: AccountConfig, account_name: str) -> Profile | None:
        fetcher = BrowserFetcher(
            page,
            self.gateway_config.origin,
            account_name,
            api_user_key=self.gateway_config.api_user_key,
            logger=self.logger,
        )

        self.logger.info(f"ℹ️ {account_name}: Opening {self.gateway_config.origin}")
        await page.goto(self.gateway_config.origin, wait_until="networkidle", timeout=self.PAGE_LOAD_TIMEOUT_MS)
        await random_delay(*self.PAGE_SETTLE_DELAY)

        sign_in = CredentialsSignIn(
            account_name,
            self.gateway_config,
            account.username,
            account.password,
            logger=self.logger,
        )
        login = await sign_in.login(fetcher)
        if login is None:
            return None
        session = login.session

        await self.claim_daily_reward(fetcher, session, account_name)

        profile = await self.fetch_profile(fetcher, session, account_name)
        if profile is None:
            # 使用登录接口返回的用户数据作为备用，不再处理奖励和令牌
            self.logger.warning(f"⚠️ {account_name}: Using user data from login response")
            return Profile.from_dict(login.user)

        if profile.bonus_balance and profile.bonus_balance > 0:
            profile = await self.settle_bonus(fetcher, session, profile, account_name)

        manager = TokenManager(fetcher, self.gateway_config, account_name, logger=self.logger)
        outcome = await manager.reconcile(session, account.tokens)

        # 上传必须在令牌列表（含补充额度后的数据）确定之后
        self.publisher.publish(outcome.candidates, outcome.tokens, account)

        if outcome.tokens:
            profile.tokens = project_tokens(outcome.tokens)
            self.logger.info(f"ℹ️ {account_name}: Got {len(profile.tokens)} token(s) info")

        return profile

    async def execute(self, account: AccountConfig, index: int = 0) -> RunResult:
        """处理单个账号，浏览器在任何退出路径上都会关闭"""
        account_name = account.get_display_name(index)
        self.logger.info(f"⏳ 开始处理 {account_name}")

        profile = None
        finished = False
        try:
            async with self.browser_factory() as browser:
                page = await browser.new_page()
                profile = await self._run_in_page(page, account, account_name)
                finished = True
        except Exception as e:
            if not finished:
                self.logger.error(f"❌ {account_name}: Unexpected error: {e}")
                return RunResult(username=account.username, success=False)
            # 流程已完成，关闭浏览器出错不影响结果
            self.logger.warning(f"⚠️ {account_name}: Failed to close browser: {e}")

        if profile is None:
            self.logger.error(f"❌ {account_name}: Login failed")
            return RunResult(username=account.username, success=False)

        self.logger.info(f"✅ {account_name}: Done")
        return RunResult(username=account.username, success=True, data=profile)

    async def process_accounts(self, accounts: list[AccountConfig]) -> list[RunResult]:
        """依次处理多个账号（不并发），账号之间随机等待"""
        results: list[RunResult] = []
        total = len(accounts)

        for i, account in enumerate(accounts):
            self.logger.info(f"ℹ️ Processing account {i + 1}/{total}")
            results.append(await self.execute(account, i))

            if i < total - 1:
                delay = await random_delay(self.app_config.account_delay_min, self.app_config.account_delay_max)
                self.logger.info(f"ℹ️ Waited {delay:.1f}s before next account")

        return results
