# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.

"""
Numeric widening/narrowing rules and the timestamp text profile shared by
the forward (builders, interpreter, tracer) and reverse (sources)
directions.

Timestamps in text form follow one fixed, locale independent profile:

- naive: ``YYYY-MM-DDTHH:MM:SS[.fraction]``
- UTC: the naive form followed by ``Z`` (``+00:00`` is accepted on input)

and are stored as integer milliseconds since 1970-01-01T00:00:00.
"""

import datetime
import re
from typing import Optional

from pycolumnar.error import ColumnarEncodingError, ColumnarTypeMismatchError
from pycolumnar.event import EventKind, INT_KINDS, NUMBER_KINDS, kind_name
from pycolumnar.types import (
    DataType,
    FLOAT_BITS,
    INT_BITS,
    STRING_TYPES,
    BINARY_TYPES,
    is_float,
    is_integer,
    is_signed,
    is_unsigned,
    type_name,
)

INT_RANGES = {
    DataType.INT8: (-(2**7), 2**7 - 1),
    DataType.INT16: (-(2**15), 2**15 - 1),
    DataType.INT32: (-(2**31), 2**31 - 1),
    DataType.INT64: (-(2**63), 2**63 - 1),
    DataType.UINT8: (0, 2**8 - 1),
    DataType.UINT16: (0, 2**16 - 1),
    DataType.UINT32: (0, 2**32 - 1),
    DataType.UINT64: (0, 2**64 - 1),
}

EVENT_TYPES = {
    EventKind.NULL: DataType.NULL,
    EventKind.BOOL: DataType.BOOL,
    EventKind.I8: DataType.INT8,
    EventKind.I16: DataType.INT16,
    EventKind.I32: DataType.INT32,
    EventKind.I64: DataType.INT64,
    EventKind.U8: DataType.UINT8,
    EventKind.U16: DataType.UINT16,
    EventKind.U32: DataType.UINT32,
    EventKind.U64: DataType.UINT64,
    EventKind.F32: DataType.FLOAT32,
    EventKind.F64: DataType.FLOAT64,
    EventKind.STR: DataType.UTF8,
    EventKind.BYTES: DataType.BINARY,
}

TYPE_EVENTS = {
    DataType.BOOL: EventKind.BOOL,
    DataType.INT8: EventKind.I8,
    DataType.INT16: EventKind.I16,
    DataType.INT32: EventKind.I32,
    DataType.INT64: EventKind.I64,
    DataType.UINT8: EventKind.U8,
    DataType.UINT16: EventKind.U16,
    DataType.UINT32: EventKind.U32,
    DataType.UINT64: EventKind.U64,
    DataType.FLOAT16: EventKind.F32,
    DataType.FLOAT32: EventKind.F32,
    DataType.FLOAT64: EventKind.F64,
    DataType.UTF8: EventKind.STR,
    DataType.LARGE_UTF8: EventKind.STR,
    DataType.BINARY: EventKind.BYTES,
    DataType.LARGE_BINARY: EventKind.BYTES,
    DataType.DATE64: EventKind.I64,
}

_SIGNED_BY_BITS = {8: DataType.INT8, 16: DataType.INT16, 32: DataType.INT32, 64: DataType.INT64}
_UNSIGNED_BY_BITS = {8: DataType.UINT8, 16: DataType.UINT16, 32: DataType.UINT32, 64: DataType.UINT64}
_FLOAT_BY_BITS = {16: DataType.FLOAT16, 32: DataType.FLOAT32, 64: DataType.FLOAT64}


def merge_types(left: int, right: int, coerce_numbers: bool = False) -> Optional[int]:
    """
    Return the narrowest type able to hold values of both types, or None if
    the types are incompatible.

    Unsigned integers widen to larger unsigned integers or to a signed
    integer covering their range, floats widen to the larger float. With
    `coerce_numbers` any two integers unify (unsigned 64 with signed gives
    int64) and mixing integers with floats gives float64.
    """
    if left == right:
        return left
    if is_integer(left) and is_integer(right):
        left_bits, right_bits = INT_BITS[left], INT_BITS[right]
        if is_signed(left) == is_signed(right):
            table = _SIGNED_BY_BITS if is_signed(left) else _UNSIGNED_BY_BITS
            return table[max(left_bits, right_bits)]
        if is_unsigned(left):
            unsigned_bits, signed_bits = left_bits, right_bits
        else:
            unsigned_bits, signed_bits = right_bits, left_bits
        bits = max(signed_bits, 2 * unsigned_bits)
        if bits <= 64:
            return _SIGNED_BY_BITS[bits]
        return DataType.INT64 if coerce_numbers else None
    if is_float(left) and is_float(right):
        return _FLOAT_BY_BITS[max(FLOAT_BITS[left], FLOAT_BITS[right])]
    if coerce_numbers and (is_float(left) or is_integer(left)) and (is_float(right) or is_integer(right)):
        return DataType.FLOAT64
    return None


def coerce_int(value: int, data_type: int, name: str) -> int:
    low, high = INT_RANGES[data_type]
    if value < low or value > high:
        raise ColumnarEncodingError(f"Value {value} of field {name!r} overflows {type_name(data_type)} range [{low}, {high}]")
    return value


def coerce_scalar(kind: int, value, data_type: int, name: str):
    """
    Convert the value of a scalar event into the value stored in a column of
    `data_type`, raising if the event cannot be stored in that column.
    """
    if is_integer(data_type) or data_type == DataType.DATE64:
        if kind in INT_KINDS:
            target = DataType.INT64 if data_type == DataType.DATE64 else data_type
            return coerce_int(value, target, name)
    elif is_float(data_type):
        if kind in NUMBER_KINDS:
            return float(value)
    elif data_type == DataType.BOOL:
        if kind == EventKind.BOOL:
            return value
    elif data_type in STRING_TYPES:
        if kind == EventKind.STR:
            return value
    elif data_type in BINARY_TYPES:
        if kind == EventKind.BYTES:
            return bytes(value)
    raise ColumnarTypeMismatchError(f"Cannot store {kind_name(kind)} value {value!r} in field {name!r} of type {type_name(data_type)}")


ZERO_VALUES = {
    DataType.BOOL: False,
    DataType.FLOAT16: 0.0,
    DataType.FLOAT32: 0.0,
    DataType.FLOAT64: 0.0,
    DataType.UTF8: "",
    DataType.LARGE_UTF8: "",
    DataType.BINARY: b"",
    DataType.LARGE_BINARY: b"",
    DataType.DATE64: 0,
}


def zero_value(data_type: int):
    """The placeholder stored for null and default elements."""
    if is_integer(data_type):
        return 0
    return ZERO_VALUES.get(data_type)


_EPOCH = datetime.datetime(1970, 1, 1)
_TIMESTAMP_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?(Z|\+00:00)?$")


def _parse(text: str, utc: bool) -> int:
    match = _TIMESTAMP_RE.match(text) if isinstance(text, str) else None
    if match is None or (match.group(8) is not None) != utc:
        profile = "UTC" if utc else "naive"
        raise ColumnarEncodingError(f"Invalid {profile} timestamp {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    millis = int((match.group(7) or "0")[:3].ljust(3, "0"))
    try:
        dt = datetime.datetime(year, month, day, hour, minute, second)
    except ValueError as e:
        raise ColumnarEncodingError(f"Invalid timestamp {text!r}: {e}") from e
    delta = dt - _EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + millis


def parse_naive_timestamp(text: str) -> int:
    return _parse(text, utc=False)


def parse_utc_timestamp(text: str) -> int:
    return _parse(text, utc=True)


def _is_timestamp(text, utc: bool) -> bool:
    # only the canonical form, the one the formatter produces
    try:
        return _format_millis(_parse(text, utc), utc) == text
    except ColumnarEncodingError:
        return False


def is_naive_timestamp(text: str) -> bool:
    return _is_timestamp(text, utc=False)


def is_utc_timestamp(text: str) -> bool:
    return _is_timestamp(text, utc=True)


def _format(dt: datetime.datetime, fraction: str, utc: bool) -> str:
    text = f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}{fraction}"
    return text + "Z" if utc else text


def _format_millis(millis: int, utc: bool) -> str:
    try:
        dt = _EPOCH + datetime.timedelta(milliseconds=millis)
    except OverflowError as e:
        raise ColumnarEncodingError(f"Timestamp {millis} ms is out of range") from e
    fraction = f".{millis % 1000:03d}" if millis % 1000 else ""
    return _format(dt, fraction, utc)


def format_naive_timestamp(millis: int) -> str:
    return _format_millis(millis, utc=False)


def format_utc_timestamp(millis: int) -> str:
    return _format_millis(millis, utc=True)


def format_datetime(dt: datetime.datetime) -> str:
    """Render a datetime in the timestamp profile, aware datetimes are converted to UTC."""
    utc = dt.tzinfo is not None
    if utc:
        dt = dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    fraction = f".{dt.microsecond:06d}" if dt.microsecond else ""
    return _format(dt, fraction, utc)
