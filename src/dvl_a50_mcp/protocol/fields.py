"""Typed splitting of comma-delimited serial records.

Every serial report is a tag followed by positional fields::

    wrz,0.120,-0.400,2.000,y,1.30,1.845,1e-07;0;0;0;1e-07;0;0;0;1e-07,7
        |--------------------------- fields -------------------------|

The tag selects one of three fixed schemas below, and :func:`split`
turns the field text into a :class:`Record` of typed :class:`Element`
values. A record either matches its schema completely or is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..errors import MalformedField

DELIMITER = ","

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class ElementType(Enum):
    """Kind of value a schema position holds."""

    STR = "str"
    LINT = "int64"
    INT = "int32"
    DBL = "double"


Value = Union[str, int, float]


@dataclass(frozen=True)
class Element:
    """One typed field of a record."""

    type: ElementType
    value: Value


Record = list[Element]
Schema = tuple[ElementType, ...]

_S, _L, _I, _D = ElementType.STR, ElementType.LINT, ElementType.INT, ElementType.DBL

# vx, vy, vz, valid, altitude, fom, covariance, time_of_validity,
# time_of_transmission, status
VELOCITY_SCHEMA: Schema = (_D, _D, _D, _S, _D, _D, _S, _L, _L, _I)

# id, velocity, distance, rssi, nsd
TRANSDUCER_SCHEMA: Schema = (_I, _D, _D, _I, _I)

# time_stamp, x, y, z, pos_std, roll, pitch, yaw, status
DEAD_RECKONING_SCHEMA: Schema = (_D, _D, _D, _D, _D, _D, _D, _D, _I)


def _parse_int(token: str, low: int, high: int) -> int:
    value = int(token)
    if not low <= value <= high:
        raise ValueError(f"{value} out of range [{low}, {high}]")
    return value


def parse_token(token: str, kind: ElementType) -> Value:
    """Parse a single token as ``kind``.

    Raises:
        ValueError: If the token is not a valid value of that kind.
    """
    if kind is ElementType.STR:
        return token
    if kind is ElementType.LINT:
        return _parse_int(token, INT64_MIN, INT64_MAX)
    if kind is ElementType.INT:
        return _parse_int(token, INT32_MIN, INT32_MAX)
    return float(token)


def split(text: str, schema: Schema, delimiter: str = DELIMITER) -> Record:
    """Split ``text`` into a record typed according to ``schema``.

    Args:
        text: The field portion of a report (tag and checksum removed).
        schema: Ordered element types, one per expected token.
        delimiter: Field separator.

    Returns:
        A list with exactly ``len(schema)`` elements.

    Raises:
        MalformedField: If the token count differs from the schema length
            or any token fails to parse as its declared type.
    """
    tokens = text.split(delimiter)
    if len(tokens) != len(schema):
        raise MalformedField(
            f"Expected {len(schema)} fields, got {len(tokens)}: {text!r}"
        )

    record: Record = []
    for index, (token, kind) in enumerate(zip(tokens, schema)):
        try:
            value = parse_token(token.strip(), kind)
        except ValueError as e:
            raise MalformedField(
                f"Field {index} ({kind.value}) could not be parsed from {token!r}"
            ) from e
        record.append(Element(kind, value))
    return record


def values(record: Record) -> list[Value]:
    """Return the plain values of a record, in order."""
    return [element.value for element in record]
