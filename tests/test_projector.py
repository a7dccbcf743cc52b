"""
Tests for projecting indexer records into Order and Token rows.
"""

from datetime import datetime, timezone

from market_ingress.indexer.projector import build_order, build_token, decode_timestamp

from fakes import wire_order


def test_decode_timestamp_is_utc():
    assert decode_timestamp("0") == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert decode_timestamp(1700000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert decode_timestamp(None) is None


def test_build_order_links_token_and_drops_nulls():
    raw = wire_order("o1", 120, token_id="0xabc-1", openTo="1700003600")

    order = build_order(raw, "ethereum")

    assert order["id"] == "o1"
    assert order["network"] == "ethereum"
    assert order["last_block"] == "120"
    assert order["token"] == "0xabc-1"
    assert order["created_at"] == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert order["open_to"] == datetime(2023, 11, 14, 23, 13, 20, tzinfo=timezone.utc)
    # Explicit nulls are "not present"
    assert "taker" not in order
    assert "open_from" not in order
    assert "paid_amount" not in order


def test_build_order_keeps_falsy_values():
    raw = wire_order("o1", 1, price="0", priceIsMinimum=False, maker="")

    order = build_order(raw, "ethereum")

    assert order["price"] == "0"
    assert order["price_is_minimum"] is False
    assert order["maker"] == ""


def test_build_token_from_order_record():
    token = build_token(wire_order("o1", 1, token_id="0xabc-7"), "polygon")

    assert token == {
        "id": "0xabc-7",
        "contract": "0xcontract",
        "token_id": "o1",
        "owner": "0xowner",
        "created_at": datetime(2023, 7, 22, 4, 26, 40, tzinfo=timezone.utc),
        "network": "polygon",
    }


def test_build_token_from_bare_token():
    token = build_token({"id": "t1", "contract": "0xc", "tokenId": "1", "createdAt": None}, "ethereum")

    assert token == {"id": "t1", "contract": "0xc", "token_id": "1", "network": "ethereum"}
