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

import dataclasses
import datetime
import enum
from typing import Dict

import numpy as np
import pytest

from pycolumnar import event as ev
from pycolumnar.api import trace_field, trace_schema
from pycolumnar.error import ProtocolError, SchemaInferenceError
from pycolumnar.event import EventKind, feed
from pycolumnar.schema import Field
from pycolumnar.tracing import RecordsTracer, TracingOptions
from pycolumnar.types import DataType, Strategy
from pycolumnar.union import Variant


@dataclasses.dataclass
class Record:
    name: str
    scores: Dict[str, int]


class Color(enum.Enum):
    RED = 1
    GREEN = 2


def test_trace_primitives():
    fields = trace_schema([{"a": 1, "b": "x", "c": True, "d": 1.5}, {"a": 2, "b": None, "c": False, "d": 2.5}])
    assert fields == [
        Field("a", DataType.INT64),
        Field("b", DataType.UTF8, True),
        Field("c", DataType.BOOL),
        Field("d", DataType.FLOAT64),
    ]


def test_trace_bytes():
    assert trace_schema([{"a": b"x"}]) == [Field("a", DataType.BINARY)]


def test_trace_numpy_widening():
    fields = trace_schema([{"a": np.uint8(1), "b": np.uint32(1)}, {"a": np.uint16(2), "b": 5}])
    assert fields == [Field("a", DataType.UINT16), Field("b", DataType.INT64)]
    assert trace_schema([{"a": np.float32(1)}, {"a": np.float64(1)}]) == [Field("a", DataType.FLOAT64)]


def test_trace_incompatible_types():
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": 1}, {"a": "x"}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": 1}, {"a": 1.5}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": 1}, {"a": [1]}])


def test_trace_coerce_numbers():
    options = TracingOptions(coerce_numbers=True)
    assert trace_schema([{"a": 1}, {"a": 1.5}], options) == [Field("a", DataType.FLOAT64)]
    assert trace_schema([{"a": np.uint64(1)}, {"a": np.int8(1)}], options) == [Field("a", DataType.INT64)]


def test_trace_no_records():
    with pytest.raises(SchemaInferenceError, match="No records found"):
        trace_schema([])


def test_trace_root_must_be_struct():
    with pytest.raises(SchemaInferenceError, match="Unexpected root type"):
        trace_schema([1, 2])
    with pytest.raises(SchemaInferenceError, match="Unexpected root type"):
        trace_schema([[1], [2]])


def test_trace_null_root():
    with pytest.raises(SchemaInferenceError):
        trace_schema([None, {"a": 1}])
    fields = trace_schema([None, {"a": 1}], TracingOptions(allow_null_root=True))
    assert fields == [Field("a", DataType.INT64, True)]


def test_trace_only_nulls():
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": None}, {"a": None}])
    fields = trace_schema([{"a": None}], TracingOptions(allow_null_fields=True))
    assert fields == [Field("a", DataType.NULL, True)]


def test_trace_struct_field_sets():
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": 1}, {"a": 2, "b": 3}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": 1, "b": 2}, {"a": 1}])
    options = TracingOptions(merge_unknown_struct_fields=True)
    assert trace_schema([{"a": 1}, {"a": 2, "b": 3}], options) == [
        Field("a", DataType.INT64),
        Field("b", DataType.INT64, True),
    ]
    assert trace_schema([{"a": 1, "b": 2}, {"b": 1}], options) == [
        Field("a", DataType.INT64, True),
        Field("b", DataType.INT64),
    ]


def test_trace_list():
    fields = trace_schema([{"a": [1, 2]}, {"a": []}, {"a": None}])
    assert fields == [Field("a", DataType.LIST, True, [Field("element", DataType.INT64)])]
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"a": []}])
    fields = trace_schema([{"a": []}], TracingOptions(allow_null_fields=True))
    assert fields == [Field("a", DataType.LIST, False, [Field("element", DataType.NULL, True)])]


def test_trace_nested_lists():
    fields = trace_schema([{"a": [[1], [None, 2]]}])
    element = Field("element", DataType.LIST, False, [Field("element", DataType.INT64, True)])
    assert fields == [Field("a", DataType.LIST, False, [element])]


def test_trace_tuple():
    fields = trace_schema([{"t": (1, "x")}, {"t": (2, None)}])
    expected = Field(
        "t",
        DataType.STRUCT,
        False,
        [Field("0", DataType.INT64), Field("1", DataType.UTF8, True)],
    ).with_strategy(Strategy.TUPLE_AS_STRUCT)
    assert fields == [expected]
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"t": (1,)}, {"t": (1, 2)}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"t": (1, 2)}, {"t": (1,)}])


def test_trace_nested_struct():
    fields = trace_schema([{"s": {"x": 1}}, {"s": {"x": 2}}])
    expected = Field("s", DataType.STRUCT, False, [Field("x", DataType.INT64)]).with_strategy(Strategy.MAP_AS_STRUCT)
    assert fields == [expected]


def test_trace_map():
    records = [Record("a", {"x": 1}), Record("b", {})]
    fields = trace_schema(records, TracingOptions(map_as_struct=False))
    assert fields == [
        Field("name", DataType.UTF8),
        Field("scores", DataType.MAP, False, [Field("key", DataType.UTF8), Field("value", DataType.INT64)]),
    ]
    with pytest.raises(SchemaInferenceError):
        trace_schema([Record("a", {None: 1}), Record("b", {"x": 1})], TracingOptions(map_as_struct=False))


def test_trace_struct_keys_must_be_strings():
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"s": {1: 2}}])


def test_trace_union():
    fields = trace_schema([{"v": Variant("A", 0, 1)}, {"v": Variant("B", 1, "x")}])
    assert fields == [Field("v", DataType.UNION, False, [Field("A", DataType.INT64), Field("B", DataType.UTF8)])]
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"v": Variant("B", 1, "x")}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"v": Variant("A", 0, 1)}, {"v": Variant("C", 0, 1)}])
    with pytest.raises(SchemaInferenceError):
        trace_schema([{"v": Variant("A", 0, 1)}, {"v": None}])


def test_trace_enum():
    fields = trace_schema([{"c": Color.RED}, {"c": Color.GREEN}])
    assert fields == [
        Field("c", DataType.UNION, False, [Field("RED", DataType.NULL, True), Field("GREEN", DataType.NULL, True)])
    ]


def test_trace_guess_dates():
    options = TracingOptions(guess_dates=True)
    fields = trace_schema([{"d": "2020-01-01T00:00:00"}, {"d": "2020-01-02T00:00:00.123"}], options)
    assert fields == [Field("d", DataType.DATE64).with_strategy(Strategy.NAIVE_STR_AS_DATE64)]
    aware = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
    fields = trace_schema([{"d": aware}], options)
    assert fields == [Field("d", DataType.DATE64).with_strategy(Strategy.UTC_STR_AS_DATE64)]
    fields = trace_schema([{"d": "2020-01-01T00:00:00"}, {"d": "2020-01-01T00:00:00Z"}], options)
    assert fields == [Field("d", DataType.UTF8)]
    assert trace_schema([{"d": "2020-01-01T00:00:00"}]) == [Field("d", DataType.UTF8)]


def test_trace_guess_dates_canonical_only():
    options = TracingOptions(guess_dates=True)
    for text in [
        "2020-01-01T00:00:00.5",
        "2020-01-01T00:00:00+00:00",
        "2020-01-01T00:00:00.123456",
        "2020-13-45T00:00:00",
    ]:
        assert trace_schema([{"d": text}], options) == [Field("d", DataType.UTF8)]
    fields = trace_schema([{"d": "2020-01-01T00:00:00.500"}, {"d": "2020-02-29T23:59:59"}], options)
    assert fields == [Field("d", DataType.DATE64).with_strategy(Strategy.NAIVE_STR_AS_DATE64)]


def test_trace_union_invalid_index():
    with pytest.raises(ProtocolError):
        trace_field([Variant("A", -1, 1)])
    with pytest.raises(ProtocolError):
        trace_schema([{"v": Variant("A", None, 1)}])


def test_trace_field():
    assert trace_field([1, 2, None]) == Field("item", DataType.INT64, True)
    assert trace_field([np.int8(1)], name="x") == Field("x", DataType.INT8)
    with pytest.raises(SchemaInferenceError):
        trace_field([None])
    assert trace_field([None], options=TracingOptions(allow_null_root=True)) == Field("item", DataType.NULL, True)


def test_tracer_duplicate_key():
    tracer = RecordsTracer(TracingOptions())
    feed(tracer, [ev.START_STRUCT, ev.string("a"), ev.scalar(EventKind.I64, 1)])
    with pytest.raises(ProtocolError):
        tracer.accept(ev.string("a"))


def test_tracer_unbalanced():
    tracer = RecordsTracer(TracingOptions())
    with pytest.raises(ProtocolError):
        tracer.accept(ev.END_STRUCT)
    tracer = RecordsTracer(TracingOptions())
    feed(tracer, [ev.START_STRUCT, ev.string("a")])
    with pytest.raises(ProtocolError):
        tracer.finish()


def test_tracing_options_replace():
    options = TracingOptions().replace(coerce_numbers=True)
    assert options.coerce_numbers
    assert options.map_as_struct
    assert not options.allow_null_root
