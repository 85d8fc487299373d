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
Schema nodes and their conversion from and to Apache Arrow fields.

A `Field` describes one column: its logical type, nullability, children
for container types and string metadata carrying encoding strategies.
"""

from typing import Dict, List, Optional, Sequence

import pyarrow as pa
from pyarrow import types as pa_types

from pycolumnar.error import SchemaError, UnsupportedTypeError
from pycolumnar.types import (
    DataType,
    Strategy,
    STRATEGY_KEY,
    STRATEGIES,
    LIST_TYPES,
    STRING_TYPES,
    is_integer,
    is_primitive,
    type_name,
)


class Field:
    __slots__ = ("name", "data_type", "nullable", "children", "metadata")

    def __init__(
        self,
        name: str,
        data_type: int,
        nullable: bool = False,
        children: Optional[Sequence["Field"]] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.name = name
        self.data_type = data_type
        self.nullable = nullable
        self.children: List[Field] = list(children or [])
        self.metadata: Dict[str, str] = dict(metadata or {})

    @property
    def strategy(self) -> Optional[str]:
        return self.metadata.get(STRATEGY_KEY)

    def with_strategy(self, strategy: str) -> "Field":
        metadata = dict(self.metadata)
        metadata[STRATEGY_KEY] = strategy
        return Field(self.name, self.data_type, self.nullable, self.children, metadata)

    def with_name(self, name: str) -> "Field":
        return Field(name, self.data_type, self.nullable, self.children, self.metadata)

    def __eq__(self, other):
        if not isinstance(other, Field):
            return NotImplemented
        return (
            self.name == other.name
            and self.data_type == other.data_type
            and self.nullable == other.nullable
            and self.children == other.children
            and self.metadata == other.metadata
        )

    def __hash__(self):
        return hash((self.name, self.data_type, self.nullable, tuple(self.children)))

    def __repr__(self):
        parts = [repr(self.name), type_name(self.data_type)]
        if self.nullable:
            parts.append("nullable=True")
        if self.children:
            parts.append(f"children={self.children!r}")
        if self.metadata:
            parts.append(f"metadata={self.metadata!r}")
        return f"Field({', '.join(parts)})"

    def validate(self):
        """Check the child arity and strategy of this field and all its descendants."""
        data_type = self.data_type
        num_children = len(self.children)
        if is_primitive(data_type):
            if num_children:
                raise SchemaError(f"Primitive field {self.name!r} of type {type_name(data_type)} must not have children")
        elif data_type in LIST_TYPES:
            if num_children != 1:
                raise SchemaError(f"List field {self.name!r} must have exactly one child, got {num_children}")
        elif data_type == DataType.STRUCT:
            names = [child.name for child in self.children]
            if len(set(names)) != len(names):
                raise SchemaError(f"Struct field {self.name!r} has duplicate child names {names}")
        elif data_type == DataType.MAP:
            if num_children != 2:
                raise SchemaError(f"Map field {self.name!r} must have exactly two children (key, value), got {num_children}")
            if self.children[0].nullable:
                raise SchemaError(f"Map field {self.name!r} must have a non-nullable key")
        elif data_type == DataType.UNION:
            if num_children == 0:
                raise SchemaError(f"Union field {self.name!r} must have at least one variant")
        elif data_type == DataType.DICTIONARY:
            if num_children != 2:
                raise SchemaError(f"Dictionary field {self.name!r} must have exactly two children (key, value), got {num_children}")
            key, value = self.children
            if not is_integer(key.data_type):
                raise SchemaError(f"Dictionary field {self.name!r} needs an integer key, got {type_name(key.data_type)}")
            if value.data_type not in STRING_TYPES:
                raise SchemaError(f"Dictionary field {self.name!r} needs string values, got {type_name(value.data_type)}")
        else:
            raise UnsupportedTypeError(f"Unknown data type {data_type} for field {self.name!r}")

        strategy = self.strategy
        if strategy is not None:
            if strategy not in STRATEGIES:
                raise SchemaError(f"Unknown strategy {strategy!r} for field {self.name!r}")
            if strategy in (Strategy.TUPLE_AS_STRUCT, Strategy.MAP_AS_STRUCT) and data_type != DataType.STRUCT:
                raise SchemaError(f"Strategy {strategy} requires a struct field, {self.name!r} is {type_name(data_type)}")
            if strategy in (Strategy.NAIVE_STR_AS_DATE64, Strategy.UTC_STR_AS_DATE64) and data_type != DataType.DATE64:
                raise SchemaError(f"Strategy {strategy} requires a date64 field, {self.name!r} is {type_name(data_type)}")

        for child in self.children:
            child.validate()

    def to_arrow(self) -> pa.Field:
        return pa.field(self.name, self.to_arrow_type(), nullable=self.nullable, metadata=self.metadata or None)

    def to_arrow_type(self) -> pa.DataType:
        data_type = self.data_type
        if data_type in _PRIMITIVE_TO_ARROW:
            return _PRIMITIVE_TO_ARROW[data_type]()
        if data_type == DataType.LIST:
            return pa.list_(self.children[0].to_arrow())
        if data_type == DataType.LARGE_LIST:
            return pa.large_list(self.children[0].to_arrow())
        if data_type == DataType.STRUCT:
            return pa.struct([child.to_arrow() for child in self.children])
        if data_type == DataType.MAP:
            key, value = self.children
            return pa.map_(key.to_arrow_type(), value.to_arrow_type())
        if data_type == DataType.UNION:
            return pa.union(
                [child.to_arrow() for child in self.children],
                mode="dense",
                type_codes=list(range(len(self.children))),
            )
        if data_type == DataType.DICTIONARY:
            key, value = self.children
            return pa.dictionary(key.to_arrow_type(), value.to_arrow_type())
        raise UnsupportedTypeError(f"Unsupported type {type_name(data_type)} for Arrow conversion")

    @classmethod
    def from_arrow(cls, arrow_field: pa.Field) -> "Field":
        metadata = {}
        if arrow_field.metadata:
            metadata = {_decode(k): _decode(v) for k, v in arrow_field.metadata.items()}
        data_type, children = _from_arrow_type(arrow_field.type, arrow_field.name)
        return cls(arrow_field.name, data_type, arrow_field.nullable, children, metadata)


def _decode(value):
    return value.decode() if isinstance(value, bytes) else value


_PRIMITIVE_TO_ARROW = {
    DataType.NULL: pa.null,
    DataType.BOOL: pa.bool_,
    DataType.INT8: pa.int8,
    DataType.INT16: pa.int16,
    DataType.INT32: pa.int32,
    DataType.INT64: pa.int64,
    DataType.UINT8: pa.uint8,
    DataType.UINT16: pa.uint16,
    DataType.UINT32: pa.uint32,
    DataType.UINT64: pa.uint64,
    DataType.FLOAT16: pa.float16,
    DataType.FLOAT32: pa.float32,
    DataType.FLOAT64: pa.float64,
    DataType.UTF8: pa.utf8,
    DataType.LARGE_UTF8: pa.large_utf8,
    DataType.BINARY: pa.binary,
    DataType.LARGE_BINARY: pa.large_binary,
    DataType.DATE64: pa.date64,
}

_ARROW_PREDICATES = [
    (pa_types.is_null, DataType.NULL),
    (pa_types.is_boolean, DataType.BOOL),
    (pa_types.is_int8, DataType.INT8),
    (pa_types.is_int16, DataType.INT16),
    (pa_types.is_int32, DataType.INT32),
    (pa_types.is_int64, DataType.INT64),
    (pa_types.is_uint8, DataType.UINT8),
    (pa_types.is_uint16, DataType.UINT16),
    (pa_types.is_uint32, DataType.UINT32),
    (pa_types.is_uint64, DataType.UINT64),
    (pa_types.is_float16, DataType.FLOAT16),
    (pa_types.is_float32, DataType.FLOAT32),
    (pa_types.is_float64, DataType.FLOAT64),
    (pa_types.is_string, DataType.UTF8),
    (pa_types.is_large_string, DataType.LARGE_UTF8),
    (pa_types.is_binary, DataType.BINARY),
    (pa_types.is_large_binary, DataType.LARGE_BINARY),
    (pa_types.is_date64, DataType.DATE64),
]


def arrow_type_id(arrow_type) -> Optional[int]:
    """The `DataType` of an Arrow type without looking at its children, None when unsupported."""
    # dictionary and map types answer true to some of the predicates below
    if pa_types.is_dictionary(arrow_type):
        return DataType.DICTIONARY
    if pa_types.is_map(arrow_type):
        return DataType.MAP
    for predicate, data_type in _ARROW_PREDICATES:
        if predicate(arrow_type):
            return data_type
    if pa_types.is_list(arrow_type):
        return DataType.LIST
    if pa_types.is_large_list(arrow_type):
        return DataType.LARGE_LIST
    if pa_types.is_struct(arrow_type):
        return DataType.STRUCT
    if pa_types.is_union(arrow_type):
        return DataType.UNION
    return None


def _from_arrow_type(arrow_type, name):
    data_type = arrow_type_id(arrow_type)
    if data_type is None:
        raise UnsupportedTypeError(f"Unsupported Arrow type {arrow_type} of field {name!r}")
    if data_type == DataType.DICTIONARY:
        key = Field("key", _from_arrow_type(arrow_type.index_type, name)[0])
        value = Field("value", _from_arrow_type(arrow_type.value_type, name)[0])
        return data_type, [key, value]
    if data_type == DataType.MAP:
        return data_type, [Field.from_arrow(arrow_type.key_field), Field.from_arrow(arrow_type.item_field)]
    if data_type in LIST_TYPES:
        return data_type, [Field.from_arrow(arrow_type.value_field)]
    if data_type == DataType.STRUCT:
        return data_type, [Field.from_arrow(arrow_type.field(i)) for i in range(arrow_type.num_fields)]
    if data_type == DataType.UNION:
        if arrow_type.mode != "dense":
            raise UnsupportedTypeError(f"Only dense unions are supported, field {name!r} is {arrow_type}")
        if list(arrow_type.type_codes) != list(range(arrow_type.num_fields)):
            raise UnsupportedTypeError(f"Union type codes must be 0..n-1, field {name!r} has {arrow_type.type_codes}")
        return data_type, [Field.from_arrow(arrow_type.field(i)) for i in range(arrow_type.num_fields)]
    return data_type, []


def as_field(field) -> Field:
    """Accept a `Field` or a `pyarrow.Field` and return a validated `Field`."""
    if isinstance(field, pa.Field):
        field = Field.from_arrow(field)
    elif not isinstance(field, Field):
        raise TypeError(f"Expected a pycolumnar.Field or pyarrow.Field, got {type(field)}")
    field.validate()
    return field


def as_fields(fields) -> List[Field]:
    if isinstance(fields, pa.Schema):
        return from_arrow_schema(fields)
    return [as_field(field) for field in fields]


def to_arrow_schema(fields: Sequence[Field]) -> pa.Schema:
    return pa.schema([field.to_arrow() for field in fields])


def from_arrow_schema(arrow_schema: pa.Schema) -> List[Field]:
    return [as_field(arrow_schema.field(i)) for i in range(len(arrow_schema))]
