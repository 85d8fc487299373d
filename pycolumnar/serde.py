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
Traversal of Python values into events and reconstruction of Python
values from events.

Serialization is driven by the runtime type of the value:

- ``None`` -> ``Null``; ``bool``, ``int``, ``float``, ``str``, ``bytes`` and
  numpy scalars -> the scalar event of matching width
- ``datetime.datetime`` -> ``Str`` in the timestamp profile of
  `pycolumnar.coercion`
- dataclass instances and namedtuples -> ``StartStruct`` .. ``EndStruct``
  with a ``Str`` key event before each value
- mappings -> ``StartMap`` .. ``EndMap`` with alternating keys and values
- tuples -> ``StartTuple`` .. ``EndTuple``
- lists, sets and other iterables -> ``StartList`` .. ``EndList``
- `Variant` and ``enum.Enum`` members -> ``Variant(name, index)`` followed
  by the payload
"""

import dataclasses
import datetime
import enum
from collections.abc import Iterable, Mapping

import numpy as np

from pycolumnar import event as ev
from pycolumnar.coercion import format_datetime
from pycolumnar.error import ColumnarEncodingError, ProtocolError, UnsupportedTypeError
from pycolumnar.event import CollectingSink, Event, EventKind, EventSink, EventSource, SCALAR_KINDS
from pycolumnar.union import Variant

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_U64_MAX = 2**64 - 1

_NUMPY_KINDS = {
    np.dtype(np.bool_): EventKind.BOOL,
    np.dtype(np.int8): EventKind.I8,
    np.dtype(np.int16): EventKind.I16,
    np.dtype(np.int32): EventKind.I32,
    np.dtype(np.int64): EventKind.I64,
    np.dtype(np.uint8): EventKind.U8,
    np.dtype(np.uint16): EventKind.U16,
    np.dtype(np.uint32): EventKind.U32,
    np.dtype(np.uint64): EventKind.U64,
    np.dtype(np.float16): EventKind.F32,
    np.dtype(np.float32): EventKind.F32,
    np.dtype(np.float64): EventKind.F64,
}


def _write_bool(accept, value):
    accept(Event(EventKind.BOOL, value))


def _write_int(accept, value):
    if _I64_MIN <= value <= _I64_MAX:
        accept(Event(EventKind.I64, value))
    elif 0 <= value <= _U64_MAX:
        accept(Event(EventKind.U64, value))
    else:
        raise ColumnarEncodingError(f"Integer {value} does not fit into 64 bits")


def _write_float(accept, value):
    accept(Event(EventKind.F64, value))


def _write_str(accept, value):
    accept(Event(EventKind.STR, value))


def _write_bytes(accept, value):
    accept(Event(EventKind.BYTES, bytes(value)))


def _write_datetime(accept, value):
    accept(Event(EventKind.STR, format_datetime(value)))


def _write_list(accept, value):
    accept(ev.START_LIST)
    for item in value:
        _serialize(accept, item)
    accept(ev.END_LIST)


def _write_tuple(accept, value):
    accept(ev.START_TUPLE)
    for item in value:
        _serialize(accept, item)
    accept(ev.END_TUPLE)


def _write_map(accept, value):
    accept(ev.START_MAP)
    for key, item in value.items():
        _serialize(accept, key)
        _serialize(accept, item)
    accept(ev.END_MAP)


def _write_struct(accept, names, values):
    accept(ev.START_STRUCT)
    for name, item in zip(names, values):
        accept(Event(EventKind.STR, name))
        _serialize(accept, item)
    accept(ev.END_STRUCT)


def _write_variant(accept, value):
    accept(ev.variant(value.name, value.index))
    _serialize(accept, value.value)


_WRITERS = {
    bool: _write_bool,
    int: _write_int,
    float: _write_float,
    str: _write_str,
    bytes: _write_bytes,
    bytearray: _write_bytes,
    memoryview: _write_bytes,
    datetime.datetime: _write_datetime,
    list: _write_list,
    tuple: _write_tuple,
    dict: _write_map,
    Variant: _write_variant,
}


def _serialize(accept, value):
    if value is None:
        accept(ev.NULL)
        return
    writer = _WRITERS.get(type(value))
    if writer is not None:
        writer(accept, value)
        return
    if isinstance(value, np.generic):
        kind = _NUMPY_KINDS.get(value.dtype)
        if kind is None:
            raise UnsupportedTypeError(f"Unsupported numpy scalar type {value.dtype}")
        accept(Event(kind, value.item()))
    elif isinstance(value, enum.Enum):
        accept(ev.variant(value.name, list(type(value)).index(value)))
        accept(ev.NULL)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        names = [f.name for f in dataclasses.fields(value)]
        _write_struct(accept, names, [getattr(value, name) for name in names])
    elif isinstance(value, tuple) and hasattr(value, "_fields"):
        _write_struct(accept, value._fields, value)
    elif isinstance(value, bool):
        _write_bool(accept, bool(value))
    elif isinstance(value, int):
        _write_int(accept, int(value))
    elif isinstance(value, float):
        _write_float(accept, float(value))
    elif isinstance(value, str):
        _write_str(accept, str(value))
    elif isinstance(value, datetime.datetime):
        _write_datetime(accept, value)
    elif isinstance(value, Mapping):
        _write_map(accept, value)
    elif isinstance(value, tuple):
        _write_tuple(accept, value)
    elif isinstance(value, Variant):
        _write_variant(accept, value)
    elif isinstance(value, Iterable) and not isinstance(value, (bytes, datetime.date)):
        _write_list(accept, value)
    else:
        raise UnsupportedTypeError(f"Cannot serialize value {value!r} of type {type(value)}")


def serialize_into_sink(sink: EventSink, value):
    """Emit the events describing `value` into `sink`."""
    _serialize(sink.accept, value)


def iter_events(value):
    """Return the list of events describing `value`."""
    sink = CollectingSink()
    serialize_into_sink(sink, value)
    return sink.events


def _next(source):
    event = source.next()
    if event is None:
        raise ProtocolError("Unexpected end of the event stream")
    return event


def _read_value(source, event):
    kind = event.kind
    if kind in SCALAR_KINDS:
        return event.value
    if kind == EventKind.NULL or kind == EventKind.DEFAULT:
        return None
    if kind == EventKind.START_LIST or kind == EventKind.START_TUPLE:
        end = ev.MATCHING_END[kind]
        items = []
        while True:
            item = _next(source)
            if item.kind == end:
                break
            items.append(_read_value(source, item))
        return items if kind == EventKind.START_LIST else tuple(items)
    if kind == EventKind.START_STRUCT or kind == EventKind.START_MAP:
        end = ev.MATCHING_END[kind]
        result = {}
        while True:
            key = _next(source)
            if key.kind == end:
                break
            key = _read_value(source, key)
            result[key] = _read_value(source, _next(source))
        return result
    if kind == EventKind.VARIANT:
        return Variant(event.value, event.index, _read_value(source, _next(source)))
    raise ProtocolError(f"Unexpected event {event} while reading a value")


def deserialize_from_source(source: EventSource):
    """Rebuild exactly one Python value from the events of `source`."""
    value = _read_value(source, _next(source))
    trailing = source.next()
    if trailing is not None:
        raise ProtocolError(f"Unexpected event {trailing} after the end of the value")
    return value
