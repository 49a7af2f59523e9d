import asyncio
import sys
from pathlib import Path

import pytest


project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import main as main_module
from utils.models import Profile, RunResult


def test_main_without_accounts_returns_1(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setattr(main_module, 'load_dotenv', lambda **kwargs: None)
	monkeypatch.delenv('ACCOUNTS_ANYROUTER', raising=False)

	assert asyncio.run(main_module.main()) == 1


def test_main_runs_batch_and_reports(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setattr(main_module, 'load_dotenv', lambda **kwargs: None)
	monkeypatch.setenv('ACCOUNTS_ANYROUTER', '[{"username": "a", "password": "1"}, {"username": "b", "password": "2"}]')
	seen = []

	class FakeCheckIn:
		def __init__(self, app_config, logger=None):
			self.app_config = app_config

		async def process_accounts(self, accounts):
			seen.extend(a.username for a in accounts)
			return [
				RunResult(username='a', success=True, data=Profile(balance=500000)),
				RunResult(username='b', success=False),
			]

	monkeypatch.setattr(main_module, 'AnyRouterCheckIn', FakeCheckIn)

	assert asyncio.run(main_module.main()) == 0
	assert seen == ['a', 'b']


def test_format_result_line():
	fmt = lambda q: f'${q / 500000:.2f}'

	line = main_module._format_result_line(RunResult(username='a', success=True, data=Profile(balance=1000000)), fmt)
	assert 'Balance: $2.00' in line
	assert main_module._format_result_line(RunResult(username='b', success=False), fmt).startswith('❌ b')
