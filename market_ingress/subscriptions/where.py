"""
Filter language for subscription and snapshot arguments.

A ``where`` document maps field names, optionally suffixed with an
operator, to operands::

    {"maker": "0xabc", "kind_in": ["AUCTION"], "created_at_gte": "2024-01-01T00:00:00Z",
     "token": {"contract": "0xdef"}}

The same parsed filter is evaluated against live payloads (``matches``)
and compiled to SQL for snapshots (``clauses``). Parsing rejects unknown
fields, unknown operators and mistyped operands.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Table, or_
from sqlalchemy.sql.elements import ColumnElement

from market_ingress.core.exceptions import FilterValidationError
from market_ingress.utils.serialization import parse_datetime


class FieldType(Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    JSON = "json"


class Operator(str, Enum):
    EQ = ""
    NOT = "_not"
    IN = "_in"
    NOT_IN = "_not_in"
    GT = "_gt"
    GTE = "_gte"
    LT = "_lt"
    LTE = "_lte"
    EXISTS = "_exists"


# Longest suffix first so "_not_in" wins over "_in"
SUFFIXES = sorted((op for op in Operator if op.value), key=lambda op: len(op.value), reverse=True)
RANGE_OPERATORS = {Operator.GT, Operator.GTE, Operator.LT, Operator.LTE}
LIST_OPERATORS = {Operator.IN, Operator.NOT_IN}

_COMPARE: Dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.GT: lambda a, b: a > b,
    Operator.GTE: lambda a, b: a >= b,
    Operator.LT: lambda a, b: a < b,
    Operator.LTE: lambda a, b: a <= b,
}


@dataclass(frozen=True)
class Schema:
    """Filterable fields of one payload shape."""
    fields: Dict[str, FieldType]
    nested: Dict[str, "Schema"] = field(default_factory=dict)


TOKEN_SCHEMA = Schema(
    fields={
        "id": FieldType.STRING,
        "network": FieldType.STRING,
        "created_at": FieldType.DATETIME,
        "contract": FieldType.STRING,
        "token_id": FieldType.STRING,
        "owner": FieldType.STRING,
        "uri": FieldType.STRING,
        "metadata": FieldType.JSON,
    }
)

ORDER_SCHEMA = Schema(
    fields={
        "id": FieldType.STRING,
        "network": FieldType.STRING,
        "last_block": FieldType.STRING,
        "created_at": FieldType.DATETIME,
        "kind": FieldType.STRING,
        "open": FieldType.BOOLEAN,
        "open_from": FieldType.DATETIME,
        "open_to": FieldType.DATETIME,
        "maker": FieldType.STRING,
        "taker": FieldType.STRING,
        "currency": FieldType.STRING,
        "price": FieldType.STRING,
        "price_is_minimum": FieldType.BOOLEAN,
        "paid_amount": FieldType.STRING,
    },
    nested={"token": TOKEN_SCHEMA},
)


@dataclass(frozen=True)
class Condition:
    field: str
    operator: Operator
    operand: Any
    field_type: FieldType


def _split_key(key: str, schema: Schema) -> Optional[Tuple[str, Operator]]:
    if key in schema.fields:
        return key, Operator.EQ
    for operator in SUFFIXES:
        if key.endswith(operator.value):
            name = key[:-len(operator.value)]
            if name in schema.fields:
                return name, operator
    return None


def _coerce_scalar(key: str, value: Any, field_type: FieldType) -> Any:
    if field_type is FieldType.STRING and isinstance(value, str):
        return value
    if field_type is FieldType.BOOLEAN and isinstance(value, bool):
        return value
    if field_type is FieldType.DATETIME and isinstance(value, (str, datetime)):
        try:
            return parse_datetime(value)
        except ValueError:
            pass
    raise FilterValidationError(
        f"Invalid operand for {key}: expected {field_type.value}",
        {"field": key, "value": repr(value)}
    )


def _parse_condition(key: str, name: str, operator: Operator, value: Any, field_type: FieldType) -> Condition:
    if operator is Operator.EXISTS:
        if not isinstance(value, bool):
            raise FilterValidationError(f"{key} expects a boolean", {"field": key})
        return Condition(name, operator, value, field_type)

    if field_type is FieldType.JSON:
        raise FilterValidationError(f"{name} only supports {name}_exists", {"field": key})

    if operator in RANGE_OPERATORS and field_type is not FieldType.DATETIME:
        raise FilterValidationError(f"{key}: range operators need a timestamp field", {"field": key})

    if operator in LIST_OPERATORS:
        if not isinstance(value, (list, tuple)):
            raise FilterValidationError(f"{key} expects a list", {"field": key})
        return Condition(name, operator, tuple(_coerce_scalar(key, item, field_type) for item in value), field_type)

    return Condition(name, operator, _coerce_scalar(key, value, field_type), field_type)


@dataclass(frozen=True)
class Where:
    """A parsed, validated filter."""
    conditions: Tuple[Condition, ...] = ()
    nested: Tuple[Tuple[str, "Where"], ...] = ()

    @classmethod
    def parse(cls, raw: Optional[Mapping[str, Any]], schema: Schema) -> Optional["Where"]:
        """Validate a where document; None or empty means "match everything"."""
        if raw is None:
            return None
        if not isinstance(raw, Mapping):
            raise FilterValidationError("where must be an object", {"value": repr(raw)})

        conditions: List[Condition] = []
        nested: List[Tuple[str, Where]] = []
        for key, value in raw.items():
            if value is None:
                continue
            if key in schema.nested:
                child = cls.parse(value, schema.nested[key])
                if child is not None:
                    nested.append((key, child))
                continue
            split = _split_key(key, schema)
            if split is None:
                raise FilterValidationError(f"Unknown filter field: {key}", {"field": key})
            name, operator = split
            conditions.append(_parse_condition(key, name, operator, value, schema.fields[name]))

        return cls(tuple(conditions), tuple(nested))

    def matches(self, payload: Mapping[str, Any]) -> bool:
        for condition in self.conditions:
            if not _matches(condition, payload.get(condition.field)):
                return False
        for name, child in self.nested:
            value = payload.get(name)
            if not isinstance(value, Mapping) or not child.matches(value):
                return False
        return True

    def clauses(self, table: Table, nested_tables: Optional[Mapping[str, Table]] = None) -> List[ColumnElement]:
        result = [_clause(condition, table.c[condition.field]) for condition in self.conditions]
        for name, child in self.nested:
            result.extend(child.clauses((nested_tables or {})[name]))
        return result


def _matches(condition: Condition, actual: Any) -> bool:
    operator = condition.operator
    if operator is Operator.EXISTS:
        return (actual is not None) == condition.operand

    if actual is not None and condition.field_type is FieldType.DATETIME:
        actual = parse_datetime(actual)

    if operator is Operator.EQ:
        return actual == condition.operand
    if operator is Operator.NOT:
        return actual != condition.operand
    if operator is Operator.IN:
        return actual in condition.operand
    if operator is Operator.NOT_IN:
        return actual not in condition.operand
    return actual is not None and _COMPARE[operator](actual, condition.operand)


def _clause(condition: Condition, column) -> ColumnElement:
    operator, operand = condition.operator, condition.operand
    if operator is Operator.EXISTS:
        return column.isnot(None) if operand else column.is_(None)
    if operator is Operator.EQ:
        return column == operand
    if operator is Operator.NOT:
        return or_(column != operand, column.is_(None))
    if operator is Operator.IN:
        return column.in_(operand)
    if operator is Operator.NOT_IN:
        return or_(column.notin_(operand), column.is_(None))
    if operator is Operator.GT:
        return column > operand
    if operator is Operator.GTE:
        return column >= operand
    if operator is Operator.LT:
        return column < operand
    return column <= operand
