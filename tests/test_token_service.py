"""
Tests for token lookups combining the indexer, the store and enrichment.
"""

import pytest

from market_ingress.core.exceptions import NetworkNotFoundError
from market_ingress.models.token import Token
from market_ingress.repositories.market import MarketRepository
from market_ingress.repositories.records import RecordStore
from market_ingress.services.token import TokenService

from fakes import FakeIndexerClient


def wire_token(token_id, **fields):
    token = {"id": token_id, "createdAt": "1700000000", "contract": "0xc", "tokenId": "1", "owner": "0xo", "uri": None}
    token.update(fields)
    return token


class StubWaiter:
    """Completes the configured ids immediately and records each request."""

    def __init__(self, metadata=None):
        self.metadata = metadata or {}
        self.requests = []

    async def wait(self, tokens):
        self.requests.append([token["id"] for token in tokens])
        for token in tokens:
            if token["id"] in self.metadata:
                token["metadata"] = self.metadata[token["id"]]
        return list(tokens)


@pytest.fixture
def client():
    return FakeIndexerClient(tokens=[wire_token("t1"), wire_token("t2"), wire_token("t3")])


def make_service(database, client, waiter):
    return TokenService(MarketRepository(database), {"ethereum": client}, waiter, "ethereum")


async def store_tokens(database, *rows):
    await RecordStore(database, Token.__table__).bulk_upsert(list(rows))


async def test_stored_token_with_metadata_is_returned_directly(database, client):
    await store_tokens(database, {"id": "t1", "network": "ethereum", "metadata": {"name": "One"}})
    waiter = StubWaiter()

    token = await make_service(database, client, waiter).get_token("t1")

    assert token == {"id": "t1", "network": "ethereum", "metadata": {"name": "One"}}
    assert waiter.requests == []
    assert client.token_requests == []


async def test_stored_token_without_metadata_waits_for_enrichment(database, client):
    await store_tokens(database, {"id": "t1", "network": "ethereum"})
    waiter = StubWaiter({"t1": {"name": "One"}})

    token = await make_service(database, client, waiter).get_token("t1")

    assert token["metadata"] == {"name": "One"}
    assert waiter.requests == [["t1"]]


async def test_stored_token_on_another_network_is_not_returned(database, client):
    await store_tokens(database, {"id": "t1", "network": "polygon", "metadata": {"name": "Elsewhere"}})
    waiter = StubWaiter()

    token = await make_service(database, client, waiter).get_token("t1")

    assert token["network"] == "ethereum"
    assert "metadata" not in token
    assert client.token_requests == [{"where": {"id": "t1"}, "skip": 0, "first": 1}]
    assert waiter.requests == [["t1"]]


async def test_unstored_token_is_read_from_the_indexer(database, client):
    waiter = StubWaiter()

    token = await make_service(database, client, waiter).get_token("t2")

    assert token["id"] == "t2"
    assert token["network"] == "ethereum"
    assert token["created_at"] == "2023-11-14T22:13:20+00:00"
    assert "metadata" not in token
    assert client.token_requests == [{"where": {"id": "t2"}, "skip": 0, "first": 1}]
    assert waiter.requests == [["t2"]]


async def test_unknown_token_is_none(database, client):
    waiter = StubWaiter()

    assert await make_service(database, client, waiter).get_token("missing") is None
    assert waiter.requests == []


async def test_unknown_network(database, client):
    with pytest.raises(NetworkNotFoundError):
        await make_service(database, client, StubWaiter()).get_token("t9", network="polygon")


async def test_list_merges_stored_metadata_and_waits_for_the_rest(database, client):
    await store_tokens(database, {"id": "t2", "network": "ethereum", "metadata": {"name": "Two"}})
    waiter = StubWaiter({"t1": {"name": "One"}})

    tokens = await make_service(database, client, waiter).get_tokens()

    assert [token["id"] for token in tokens] == ["t1", "t2", "t3"]
    assert tokens[0]["metadata"] == {"name": "One"}
    assert tokens[1]["metadata"] == {"name": "Two"}
    assert "metadata" not in tokens[2]
    assert waiter.requests == [["t1", "t3"]]


async def test_list_ignores_metadata_stored_for_another_network(database, client):
    await store_tokens(database, {"id": "t2", "network": "polygon", "metadata": {"name": "Elsewhere"}})
    waiter = StubWaiter()

    tokens = await make_service(database, client, waiter).get_tokens()

    assert all("metadata" not in token for token in tokens)
    assert waiter.requests == [["t1", "t2", "t3"]]


async def test_list_without_results(database):
    waiter = StubWaiter()

    assert await make_service(database, FakeIndexerClient(), waiter).get_tokens(where={"id": "nope"}) == []
    assert waiter.requests == []
