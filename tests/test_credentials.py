import json

import pytest

from trellogram.chat_config import ChatConfigStore
from trellogram.credentials import (
    DEFAULT_WORKSPACE,
    CredentialResolver,
    CredentialStore,
)
from trellogram.trello import CredentialCheck

from tests.telegram_fakes import FakeTrello, FakeValidator, TrelloFactory

GOOD = CredentialCheck(valid=True, username="ada", full_name="Ada Lovelace")


def _resolver(tmp_path, validator=None, factory=None):
    chat_config = ChatConfigStore(tmp_path / "config.json")
    resolver = CredentialResolver(
        CredentialStore(tmp_path / "credentials.json"),
        default_api_key="default-key",
        default_token="default-token",
        chat_config=chat_config,
        validator=validator or FakeValidator({("k1", "t1"): GOOD}),
        client_factory=factory or TrelloFactory(),
    )
    return resolver, chat_config


@pytest.mark.anyio
async def test_chat_without_record_uses_default(tmp_path) -> None:
    resolver, _ = _resolver(tmp_path)

    resolved = await resolver.resolve(123)

    assert resolved.pair == ("default-key", "default-token")
    assert resolved.workspace == DEFAULT_WORKSPACE
    assert not resolved.is_custom
    assert not await resolver.has_custom(123)


@pytest.mark.anyio
async def test_set_credential_stores_trimmed_pair_and_clears_board(tmp_path) -> None:
    resolver, chat_config = _resolver(tmp_path)
    await chat_config.set_board("123", "b1")
    await chat_config.set_default_list("123", "l1")

    result = await resolver.set_credential(123, "  k1 ", "t1\n")

    assert result.ok
    assert result.error is None
    assert result.workspace == "Ada Lovelace"
    resolved = await resolver.resolve("123")
    assert resolved.pair == ("k1", "t1")
    assert resolved.is_custom
    assert (await chat_config.get("123")).board_id is None

    data = json.loads((tmp_path / "credentials.json").read_text())
    record = data["chats"]["123"]
    assert record["apiKey"] == "k1"
    assert record["workspace"] == "Ada Lovelace"
    assert record["createdAt"]


@pytest.mark.anyio
async def test_failed_validation_keeps_previous_record(tmp_path) -> None:
    resolver, _ = _resolver(tmp_path)
    await resolver.set_credential(123, "k1", "t1")

    result = await resolver.set_credential(123, "bad", "pair")

    assert not result.ok
    assert result.error == "invalid key"
    assert (await resolver.resolve(123)).pair == ("k1", "t1")


@pytest.mark.anyio
async def test_clients_cached_per_pair(tmp_path) -> None:
    factory = TrelloFactory()
    custom = FakeTrello()
    factory.accounts[("k1", "t1")] = custom
    resolver, _ = _resolver(tmp_path, factory=factory)
    await resolver.set_credential(1, "k1", "t1")

    first = await resolver.client_for(1)
    again = await resolver.client_for(1)
    default = await resolver.client_for(2)
    await resolver.client_for(3)

    assert first is custom and again is custom
    assert default is factory.default
    assert factory.made == [("k1", "t1"), ("default-key", "default-token")]
    assert set(resolver.cached_pairs) == {("k1", "t1"), ("default-key", "default-token")}


@pytest.mark.anyio
async def test_set_credential_drops_cached_clients(tmp_path) -> None:
    factory = TrelloFactory()
    resolver, _ = _resolver(tmp_path, factory=factory)
    await resolver.client_for(2)
    assert resolver.cached_pairs

    await resolver.set_credential(1, "k1", "t1")

    assert resolver.cached_pairs == ()


@pytest.mark.anyio
async def test_remove_credential_falls_back_to_default(tmp_path) -> None:
    resolver, chat_config = _resolver(tmp_path)
    await resolver.set_credential(1, "k1", "t1")
    await chat_config.set_board("1", "b9")

    assert await resolver.remove_credential(1)
    assert not await resolver.remove_credential(1)

    assert (await resolver.resolve(1)).pair == ("default-key", "default-token")
    assert (await chat_config.get("1")).board_id is None


@pytest.mark.anyio
async def test_records_survive_a_new_resolver(tmp_path) -> None:
    resolver, _ = _resolver(tmp_path)
    await resolver.set_credential(1, "k1", "t1")

    reopened, _ = _resolver(tmp_path)

    assert (await reopened.resolve(1)).pair == ("k1", "t1")
    summaries = await CredentialStore(tmp_path / "credentials.json").summaries()
    assert [item.chat_id for item in summaries] == ["1"]
