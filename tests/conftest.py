from collections.abc import Callable
from pathlib import Path

import pytest

from trellogram.telegram.bridge import TelegramBridgeConfig
from tests.telegram_fakes import FakeBot, FakeTrello, make_cfg as _make_cfg


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def fake_trello() -> FakeTrello:
    return FakeTrello()


@pytest.fixture
def make_cfg(tmp_path: Path) -> Callable[..., TelegramBridgeConfig]:
    def _factory(**kwargs) -> TelegramBridgeConfig:
        return _make_cfg(tmp_path, **kwargs)

    return _factory
