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
import logging
from typing import List, Optional

import numpy as np
import pyarrow as pa
import pytest

from pycolumnar import api
from pycolumnar.api import (
    ArrayBuilder,
    ArraysBuilder,
    from_array,
    from_arrays,
    to_array,
    to_arrays,
    trace_field,
    trace_schema,
)
from pycolumnar.builders import StructBuilder
from pycolumnar.error import ColumnarEncodingError, ColumnarTypeMismatchError, SchemaError
from pycolumnar.interpreter import Interpreter
from pycolumnar.schema import Field, to_arrow_schema
from pycolumnar.tests.core import both_paths, require_pyarrow
from pycolumnar.tracing import TracingOptions
from pycolumnar.types import DataType, Strategy
from pycolumnar.union import Variant


@dataclasses.dataclass
class Item:
    id: int
    name: str
    tags: List[str]
    score: Optional[float] = None


def _tuple(name, *children):
    return Field(name, DataType.STRUCT, False, list(children)).with_strategy(Strategy.TUPLE_AS_STRUCT)


@require_pyarrow
@both_paths
def test_roundtrip_traced_records(use_bytecode):
    records = [
        {"a": 1, "b": [1.5, 2.5], "c": {"x": "s"}, "d": (1, "p")},
        {"a": 2, "b": [], "c": {"x": "t"}, "d": (2, "q")},
        {"a": 3, "b": None, "c": None, "d": (3, "r")},
    ]
    fields = trace_schema(records)
    arrays = to_arrays(fields, records, use_bytecode=use_bytecode)
    assert [len(array) for array in arrays] == [3, 3, 3, 3]
    assert from_arrays(fields, arrays) == records


@require_pyarrow
@both_paths
def test_roundtrip_all_types(use_bytecode):
    fields = [
        Field("i8", DataType.INT8),
        Field("u64", DataType.UINT64),
        Field("f16", DataType.FLOAT16, True),
        Field("s", DataType.LARGE_UTF8),
        Field("b", DataType.BINARY, True),
        Field("l", DataType.LARGE_LIST, False, [Field("element", DataType.INT16, True)]),
        Field("m", DataType.MAP, False, [Field("key", DataType.UTF8), Field("value", DataType.BOOL, True)]),
        Field("u", DataType.UNION, False, [Field("A", DataType.UTF8), Field("B", DataType.NULL, True)]),
        Field("d", DataType.DICTIONARY, False, [Field("key", DataType.UINT8), Field("value", DataType.UTF8)]),
        Field("t", DataType.DATE64, True).with_strategy(Strategy.UTC_STR_AS_DATE64),
        Field("n", DataType.NULL, True),
    ]
    records = [
        {
            "i8": -128,
            "u64": 2**64 - 1,
            "f16": 0.5,
            "s": "x",
            "b": b"\x00\x01",
            "l": [1, None],
            "m": {"k": True, "j": None},
            "u": Variant("A", 0, "v"),
            "d": "red",
            "t": "2021-06-01T12:00:00.250Z",
            "n": None,
        },
        {
            "i8": 127,
            "u64": 0,
            "f16": None,
            "s": "",
            "b": None,
            "l": [],
            "m": {},
            "u": Variant("B", 1, None),
            "d": "green",
            "t": None,
            "n": None,
        },
    ]
    arrays = to_arrays(fields, records, use_bytecode=use_bytecode)
    assert [array.type for array in arrays] == [field.to_arrow_type() for field in fields]
    assert from_arrays(fields, arrays) == records


@require_pyarrow
@both_paths
def test_null_preservation(use_bytecode):
    fields = [Field("a", DataType.INT32, True), Field("b", DataType.LIST, True, [Field("element", DataType.UTF8, True)])]
    records = [{"a": None, "b": [None, "x"]}, {"a": 1, "b": None}]
    arrays = to_arrays(fields, records, use_bytecode=use_bytecode)
    assert arrays[0].is_valid().to_pylist() == [False, True]
    assert arrays[1].is_valid().to_pylist() == [True, False]
    assert from_arrays(fields, arrays) == records


@require_pyarrow
@both_paths
def test_numeric_coercion(use_bytecode):
    arrays = to_arrays([Field("a", DataType.UINT16)], [{"a": np.uint8(3)}, {"a": np.uint8(255)}], use_bytecode=use_bytecode)
    assert arrays[0].type == pa.uint16()
    assert from_arrays([Field("a", DataType.UINT16)], arrays) == [{"a": 3}, {"a": 255}]

    arrays = to_arrays([Field("a", DataType.INT64)], [{"a": np.uint32(2**32 - 1)}], use_bytecode=use_bytecode)
    assert arrays[0].type == pa.int64()
    assert arrays[0].to_pylist() == [2**32 - 1]

    with pytest.raises(ColumnarEncodingError):
        to_arrays([Field("a", DataType.UINT8)], [{"a": 256}], use_bytecode=use_bytecode)
    with pytest.raises(ColumnarEncodingError):
        to_arrays([Field("a", DataType.INT32)], [{"a": np.int64(2**40)}], use_bytecode=use_bytecode)


@require_pyarrow
@both_paths
def test_bool_scenarios(use_bytecode):
    array = to_array(Field("item", DataType.BOOL), [True, False], use_bytecode=use_bytecode)
    assert array.to_pylist() == [True, False]
    assert array.null_count == 0
    array = to_array(Field("item", DataType.BOOL, True), [True, None, False], use_bytecode=use_bytecode)
    assert array.is_valid().to_pylist() == [True, False, True]
    assert from_array(Field("item", DataType.BOOL, True), array) == [True, None, False]
    with pytest.raises(ColumnarTypeMismatchError):
        to_array(Field("item", DataType.BOOL), [True, None], use_bytecode=use_bytecode)


@require_pyarrow
@both_paths
def test_nested_tuple_fidelity(use_bytecode):
    field = _tuple("item", Field("0", DataType.INT64))
    items = [(-1,), (2,), (3,), (-4,)]
    array = to_array(field, items, use_bytecode=use_bytecode)
    assert array.field(0).to_pylist() == [-1, 2, 3, -4]
    assert from_array(field, array) == items


@require_pyarrow
@both_paths
def test_dictionary_stability(use_bytecode):
    field = Field("item", DataType.DICTIONARY, False, [Field("key", DataType.UINT32), Field("value", DataType.UTF8)])
    array = to_array(field, ["a", "a", "b", "a"], use_bytecode=use_bytecode)
    assert array.dictionary.to_pylist() == ["a", "b"]
    assert from_array(field, array) == ["a", "a", "b", "a"]


@require_pyarrow
@both_paths
def test_dataclass_records(use_bytecode):
    items = [Item(1, "a", ["x"], 0.5), Item(2, "b", [])]
    fields = trace_schema(items)
    assert fields == [
        Field("id", DataType.INT64),
        Field("name", DataType.UTF8),
        Field("tags", DataType.LIST, False, [Field("element", DataType.UTF8)]),
        Field("score", DataType.FLOAT64, True),
    ]
    arrays = to_arrays(fields, items, use_bytecode=use_bytecode)
    assert from_arrays(fields, arrays) == [dataclasses.asdict(item) for item in items]


@require_pyarrow
@both_paths
def test_guessed_dates_roundtrip(use_bytecode):
    records = [{"at": "2020-01-01T00:00:00"}, {"at": "2020-01-01T00:00:00.001"}]
    fields = trace_schema(records, TracingOptions(guess_dates=True))
    arrays = to_arrays(fields, records, use_bytecode=use_bytecode)
    assert arrays[0].type == pa.date64()
    assert from_arrays(fields, arrays) == records

    records = [{"at": "2020-01-01T00:00:00.5"}, {"at": "2020-13-45T00:00:00"}, {"at": "2020-01-01T00:00:00+00:00"}]
    fields = trace_schema(records, TracingOptions(guess_dates=True))
    arrays = to_arrays(fields, records, use_bytecode=use_bytecode)
    assert arrays[0].type == pa.utf8()
    assert from_arrays(fields, arrays) == records


@require_pyarrow
def test_from_record_batch_and_table():
    records = [{"a": 1, "b": "x"}, {"a": 2, "b": None}]
    fields = trace_schema(records)
    schema = to_arrow_schema(fields)
    batch = pa.RecordBatch.from_arrays(to_arrays(fields, records), schema=schema)
    assert from_arrays(schema, batch) == records
    table = pa.Table.from_batches([batch, batch])
    assert from_arrays(fields, table) == records + records


@require_pyarrow
def test_arrow_fields_accepted():
    arrays = to_arrays([pa.field("a", pa.int64())], [{"a": 1}, {"a": None}])
    assert arrays[0].to_pylist() == [1, None]
    assert from_array(pa.field("a", pa.int64()), arrays[0]) == [1, None]


@require_pyarrow
def test_from_arrays_minimum_length(caplog):
    fields = [Field("a", DataType.INT64, True), Field("b", DataType.INT64, True)]
    with caplog.at_level(logging.WARNING, logger="pycolumnar.sources"):
        records = from_arrays(fields, [pa.array([1, 2, 3]), pa.array([4])])
    assert records == [{"a": 1, "b": 4}]
    assert "different lengths" in caplog.text


@require_pyarrow
def test_from_arrays_field_count():
    with pytest.raises(SchemaError):
        from_arrays([Field("a", DataType.INT64)], [pa.array([1]), pa.array([2])])


@require_pyarrow
@both_paths
def test_arrays_builder(use_bytecode):
    builder = ArraysBuilder([Field("a", DataType.INT64), Field("b", DataType.UTF8, True)], use_bytecode=use_bytecode)
    builder.push({"a": 1, "b": "x"})
    builder.extend([{"a": 2}, {"b": "z", "a": 3}])
    a, b = builder.build_arrays()
    assert a.to_pylist() == [1, 2, 3]
    assert b.to_pylist() == ["x", None, "z"]
    builder.push({"a": 4})
    (a, _) = builder.build_arrays()
    assert a.to_pylist() == [4]


@require_pyarrow
@both_paths
def test_arrays_builder_reset_after_error(use_bytecode):
    builder = ArraysBuilder([Field("a", DataType.INT64)], use_bytecode=use_bytecode)
    builder.push({"a": 1})
    with pytest.raises(ColumnarTypeMismatchError):
        builder.push({"a": "x"})
    builder.reset()
    builder.push({"a": 5})
    (a,) = builder.build_arrays()
    assert a.to_pylist() == [5]


@require_pyarrow
@both_paths
def test_array_builder(use_bytecode):
    builder = ArrayBuilder(Field("item", DataType.LIST, True, [Field("element", DataType.INT8)]), use_bytecode=use_bytecode)
    builder.push([1, 2])
    builder.extend([None, []])
    array = builder.build_array()
    assert array.type == pa.list_(pa.field("element", pa.int8(), nullable=False))
    assert array.to_pylist() == [[1, 2], None, []]


def test_default_execution_path(monkeypatch):
    fields = [Field("a", DataType.INT64)]
    assert isinstance(ArraysBuilder(fields, use_bytecode=True)._sink, Interpreter)
    assert isinstance(ArraysBuilder(fields, use_bytecode=False)._sink, StructBuilder)
    monkeypatch.setattr(api, "_ENABLE_PYCOLUMNAR_BYTECODE", False)
    assert isinstance(ArraysBuilder(fields)._sink, StructBuilder)
    monkeypatch.setattr(api, "_ENABLE_PYCOLUMNAR_BYTECODE", True)
    assert isinstance(ArraysBuilder(fields)._sink, Interpreter)


@require_pyarrow
def test_trace_field_roundtrip():
    items = [1, None, 3]
    field = trace_field(items)
    assert from_array(field, to_array(field, items)) == items
