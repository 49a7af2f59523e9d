#!/usr/bin/env python3
"""
AnyRouter 自动签到 + 令牌管理脚本（入口）
"""

import asyncio
import logging
import sys
from datetime import datetime

from dotenv import load_dotenv

from checkin import AnyRouterCheckIn
from utils.config import AppConfig, load_accounts_from_env
from utils.models import RunResult

logger = logging.getLogger('anyrouter')


def _format_result_line(result: RunResult, quota_format) -> str:
	if not result.success:
		return f'❌ {result.username}: 登录或处理失败'
	profile = result.data
	if profile is None:
		return f'✅ {result.username}'
	return (
		f'✅ {result.username}: 💳 Balance: {quota_format(profile.balance)} | '
		f'Used: {quota_format(profile.used_balance)} | 🔑 Tokens: {len(profile.tokens)}'
	)


async def main() -> int:
	load_dotenv(override=True)
	logging.basicConfig(level=logging.INFO, format='%(message)s')

	logger.info('🚀 AnyRouter 自动签到脚本启动')
	logger.info(f'🕒 执行时间: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}')

	app_config = AppConfig.load_from_env()
	accounts = load_accounts_from_env('ACCOUNTS_ANYROUTER')
	if not accounts:
		return 1

	if app_config.proxy:
		logger.info('⚙️ 已加载全局代理配置')

	checkin = AnyRouterCheckIn(app_config, logger=logger)
	results = await checkin.process_accounts(accounts)

	success_count = sum(1 for r in results if r.success)
	total_count = len(results)
	lines = [_format_result_line(r, app_config.gateway.format_quota) for r in results]
	summary = [
		'-------------------------------',
		'📢 签到统计:',
		f'🔵 Success: {success_count}/{total_count}',
		f'🔴 Failed: {total_count - success_count}/{total_count}',
	]
	logger.info('\n'.join(lines + summary))

	return 0 if success_count > 0 else 1


def run_main():
	try:
		sys.exit(asyncio.run(main()))
	except KeyboardInterrupt:
		print('\n⚠️ 用户中断')
		sys.exit(1)
	except Exception as e:
		print(f'\n❌ 程序异常: {e}')
		sys.exit(1)


if __name__ == '__main__':
	run_main()
