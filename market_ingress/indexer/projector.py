"""
Projection of indexer order records into stored Order and Token rows.

Pure functions: a null on the wire means "not present" and is dropped so
an upsert never overwrites a stored value with it. Zero and empty strings
are values and are kept.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

ORDER_FIELDS = {
    "id": "id",
    "lastBlock": "last_block",
    "kind": "kind",
    "open": "open",
    "maker": "maker",
    "taker": "taker",
    "currency": "currency",
    "price": "price",
    "priceIsMinimum": "price_is_minimum",
    "paidAmount": "paid_amount",
}
ORDER_TIMESTAMPS = {
    "createdAt": "created_at",
    "openFrom": "open_from",
    "openTo": "open_to",
}

TOKEN_FIELDS = {
    "id": "id",
    "contract": "contract",
    "tokenId": "token_id",
    "owner": "owner",
    "uri": "uri",
}
TOKEN_TIMESTAMPS = {
    "createdAt": "created_at",
}


def decode_timestamp(value: Any) -> Optional[datetime]:
    """Integer seconds since the epoch (often sent as a string) to UTC."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _project(raw: Mapping[str, Any], fields: Dict[str, str], timestamps: Dict[str, str]) -> Dict[str, Any]:
    projected: Dict[str, Any] = {}
    for wire, name in fields.items():
        if raw.get(wire) is not None:
            projected[name] = raw[wire]
    for wire, name in timestamps.items():
        if raw.get(wire) is not None:
            projected[name] = decode_timestamp(raw[wire])
    return projected


def build_order(raw: Mapping[str, Any], network: str) -> Dict[str, Any]:
    """Order row for a wire record, linked to its token by id."""
    order = _project(raw, ORDER_FIELDS, ORDER_TIMESTAMPS)
    order["network"] = network
    order["token"] = raw["token"]["id"]
    return order


def build_token(raw: Mapping[str, Any], network: str) -> Dict[str, Any]:
    """Token row embedded in a wire order record (or a bare wire token)."""
    token = _project(raw.get("token", raw), TOKEN_FIELDS, TOKEN_TIMESTAMPS)
    token["network"] = network
    return token
