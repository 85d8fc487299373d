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


class DataType:
    """
    Logical column types.
    Each type maps to exactly one Arrow type, see `pycolumnar.schema`.
    """

    # a column without values, every element is null.
    NULL = 0
    BOOL = 1
    INT8 = 2
    INT16 = 3
    INT32 = 4
    INT64 = 5
    UINT8 = 6
    UINT16 = 7
    UINT32 = 8
    UINT64 = 9
    FLOAT16 = 10
    FLOAT32 = 11
    FLOAT64 = 12
    # a UTF-8 string with 32-bit offsets.
    UTF8 = 13
    # a UTF-8 string with 64-bit offsets.
    LARGE_UTF8 = 14
    BINARY = 15
    LARGE_BINARY = 16
    # milliseconds since the UNIX epoch.
    DATE64 = 17
    # a variable-size list with 32-bit offsets, exactly one child.
    LIST = 18
    # a variable-size list with 64-bit offsets, exactly one child.
    LARGE_LIST = 19
    # a record of named children, tuples are structs with the `TupleAsStruct` strategy.
    STRUCT = 20
    # a dense union, children are the variants in declaration order.
    UNION = 21
    # a list of key/value entries, exactly two children: key and value.
    MAP = 22
    # dictionary encoded values, exactly two children: key (an integer type) and value (a string type).
    DICTIONARY = 23


_TYPE_NAMES = {v: k for k, v in vars(DataType).items() if not k.startswith("_")}

SIGNED_INT_TYPES = (DataType.INT8, DataType.INT16, DataType.INT32, DataType.INT64)
UNSIGNED_INT_TYPES = (DataType.UINT8, DataType.UINT16, DataType.UINT32, DataType.UINT64)
INT_TYPES = SIGNED_INT_TYPES + UNSIGNED_INT_TYPES
FLOAT_TYPES = (DataType.FLOAT16, DataType.FLOAT32, DataType.FLOAT64)
STRING_TYPES = (DataType.UTF8, DataType.LARGE_UTF8)
BINARY_TYPES = (DataType.BINARY, DataType.LARGE_BINARY)
LIST_TYPES = (DataType.LIST, DataType.LARGE_LIST)
PRIMITIVE_TYPES = (DataType.NULL, DataType.BOOL, DataType.DATE64) + INT_TYPES + FLOAT_TYPES + STRING_TYPES + BINARY_TYPES

INT_BITS = {
    DataType.INT8: 8,
    DataType.INT16: 16,
    DataType.INT32: 32,
    DataType.INT64: 64,
    DataType.UINT8: 8,
    DataType.UINT16: 16,
    DataType.UINT32: 32,
    DataType.UINT64: 64,
}
FLOAT_BITS = {
    DataType.FLOAT16: 16,
    DataType.FLOAT32: 32,
    DataType.FLOAT64: 64,
}


def type_name(data_type: int) -> str:
    return _TYPE_NAMES.get(data_type, f"<unknown type {data_type}>")


def is_signed(data_type: int) -> bool:
    return data_type in SIGNED_INT_TYPES


def is_unsigned(data_type: int) -> bool:
    return data_type in UNSIGNED_INT_TYPES


def is_integer(data_type: int) -> bool:
    return data_type in INT_BITS


def is_float(data_type: int) -> bool:
    return data_type in FLOAT_BITS


def is_primitive(data_type: int) -> bool:
    return data_type in PRIMITIVE_TYPES


# Metadata key of the encoding strategy of a field.
STRATEGY_KEY = "pycolumnar:strategy"


class Strategy:
    """Encoding hints stored in the field metadata under `STRATEGY_KEY`."""

    # a struct whose children are the positional items of a tuple, named "0", "1", ...
    TUPLE_AS_STRUCT = "TupleAsStruct"
    # a struct traced from a mapping with string keys.
    MAP_AS_STRUCT = "MapAsStruct"
    # a date64 column whose values are naive timestamps in text form.
    NAIVE_STR_AS_DATE64 = "NaiveStrAsDate64"
    # a date64 column whose values are UTC timestamps in text form.
    UTC_STR_AS_DATE64 = "UtcStrAsDate64"


STRATEGIES = (
    Strategy.TUPLE_AS_STRUCT,
    Strategy.MAP_AS_STRUCT,
    Strategy.NAIVE_STR_AS_DATE64,
    Strategy.UTC_STR_AS_DATE64,
)
