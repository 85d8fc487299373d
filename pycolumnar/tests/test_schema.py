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

import pyarrow as pa
import pytest

from pycolumnar.error import SchemaError, UnsupportedTypeError
from pycolumnar.schema import Field, as_field, from_arrow_schema, to_arrow_schema
from pycolumnar.tests.core import require_pyarrow
from pycolumnar.types import DataType, Strategy, STRATEGY_KEY


def _tuple_field(name, *children):
    return Field(name, DataType.STRUCT, False, list(children)).with_strategy(Strategy.TUPLE_AS_STRUCT)


def test_field_strategy():
    field = _tuple_field("t", Field("0", DataType.INT64))
    assert field.strategy == Strategy.TUPLE_AS_STRUCT
    assert field.metadata == {STRATEGY_KEY: "TupleAsStruct"}
    assert Field("a", DataType.INT64).strategy is None
    assert field.with_name("u").name == "u"
    assert field.with_name("u").strategy == Strategy.TUPLE_AS_STRUCT


def test_field_equality():
    assert Field("a", DataType.INT64) == Field("a", DataType.INT64, False)
    assert Field("a", DataType.INT64) != Field("a", DataType.INT64, True)
    assert Field("a", DataType.INT64) != Field("a", DataType.INT32)
    assert "nullable=True" in repr(Field("a", DataType.UTF8, True))


@pytest.mark.parametrize(
    "field",
    [
        Field("a", DataType.INT64, False, [Field("b", DataType.INT64)]),
        Field("a", DataType.LIST, False, []),
        Field("a", DataType.STRUCT, False, [Field("b", DataType.INT64), Field("b", DataType.UTF8)]),
        Field("a", DataType.MAP, False, [Field("key", DataType.UTF8, True), Field("value", DataType.INT64)]),
        Field("a", DataType.MAP, False, [Field("key", DataType.UTF8)]),
        Field("a", DataType.UNION, False, []),
        Field("a", DataType.DICTIONARY, False, [Field("key", DataType.FLOAT32), Field("value", DataType.UTF8)]),
        Field("a", DataType.DICTIONARY, False, [Field("key", DataType.UINT32), Field("value", DataType.INT64)]),
        Field("a", DataType.INT64).with_strategy(Strategy.TUPLE_AS_STRUCT),
        Field("a", DataType.UTF8).with_strategy(Strategy.NAIVE_STR_AS_DATE64),
        Field("a", DataType.STRUCT).with_strategy("NoSuchStrategy"),
        Field("a", DataType.LIST, False, [Field("element", DataType.LIST)]),
    ],
)
def test_validate_errors(field):
    with pytest.raises(SchemaError):
        field.validate()


def test_validate_ok():
    Field(
        "a",
        DataType.STRUCT,
        True,
        [
            Field("b", DataType.LIST, False, [Field("element", DataType.INT64, True)]),
            Field("c", DataType.DATE64).with_strategy(Strategy.UTC_STR_AS_DATE64),
            Field("d", DataType.UNION, False, [Field("A", DataType.NULL, True), Field("B", DataType.UTF8)]),
            Field("e", DataType.DICTIONARY, False, [Field("key", DataType.UINT32), Field("value", DataType.LARGE_UTF8)]),
        ],
    ).validate()


@require_pyarrow
def test_to_arrow():
    field = Field("a", DataType.LIST, True, [Field("element", DataType.INT64)])
    assert field.to_arrow() == pa.field("a", pa.list_(pa.field("element", pa.int64(), nullable=False)), nullable=True)
    assert Field("b", DataType.DATE64).to_arrow_type() == pa.date64()
    assert Field("c", DataType.LARGE_BINARY).to_arrow_type() == pa.large_binary()
    dictionary = Field("d", DataType.DICTIONARY, False, [Field("key", DataType.UINT32), Field("value", DataType.UTF8)])
    assert dictionary.to_arrow_type() == pa.dictionary(pa.uint32(), pa.utf8())
    union = Field("u", DataType.UNION, False, [Field("A", DataType.INT32), Field("B", DataType.UTF8)])
    arrow_type = union.to_arrow_type()
    assert arrow_type.mode == "dense"
    assert list(arrow_type.type_codes) == [0, 1]


@require_pyarrow
def test_arrow_roundtrip():
    fields = [
        Field("a", DataType.INT8, True),
        Field("b", DataType.LARGE_LIST, False, [Field("element", DataType.UTF8, True)]),
        _tuple_field("c", Field("0", DataType.INT64), Field("1", DataType.BOOL, True)),
        Field("d", DataType.UNION, False, [Field("A", DataType.NULL, True), Field("B", DataType.FLOAT64)]),
        Field("e", DataType.DICTIONARY, False, [Field("key", DataType.UINT32), Field("value", DataType.UTF8)]),
        Field("f", DataType.MAP, False, [Field("key", DataType.UTF8), Field("value", DataType.INT64, True)]),
        Field("g", DataType.DATE64).with_strategy(Strategy.NAIVE_STR_AS_DATE64),
    ]
    for field in fields:
        assert Field.from_arrow(field.to_arrow()) == field
    schema = to_arrow_schema(fields)
    assert schema.names == list("abcdefg")
    assert from_arrow_schema(schema) == fields


@require_pyarrow
def test_from_arrow_unsupported():
    with pytest.raises(UnsupportedTypeError):
        Field.from_arrow(pa.field("a", pa.timestamp("ms")))
    sparse = pa.union([pa.field("A", pa.int32())], mode="sparse")
    with pytest.raises(UnsupportedTypeError):
        Field.from_arrow(pa.field("a", sparse))


@require_pyarrow
def test_as_field():
    assert as_field(pa.field("a", pa.int32())) == Field("a", DataType.INT32, True)
    field = Field("b", DataType.UTF8)
    assert as_field(field) is field
    with pytest.raises(TypeError):
        as_field("a")
