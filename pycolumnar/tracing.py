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
Schema discovery from sample values.

A `Tracer` is an event sink that accumulates, for every path of the
traced values, the merged data type, whether nulls were observed and the
structure of containers. `Tracer.to_field` turns the accumulated state
into a `Field` tree.

To determine the schema correctly the samples should:

- include non-null values for optional fields
- include every variant of a union
- include at least one element of every list and map
"""

import dataclasses
import logging

from pycolumnar.coercion import EVENT_TYPES, is_naive_timestamp, is_utc_timestamp, merge_types
from pycolumnar.error import ProtocolError, SchemaInferenceError
from pycolumnar.event import END_KINDS, START_KINDS, EventKind, EventSink, SCALAR_KINDS
from pycolumnar.schema import Field
from pycolumnar.types import DataType, Strategy, type_name

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class TracingOptions:
    """
    Options of the schema tracer.

    Attributes:
        allow_null_root: Accept null records (the top level fields become
            nullable) and allow a traced single field to be of type Null.
        merge_unknown_struct_fields: Tolerate struct fields appearing or
            missing in some samples, such fields become nullable. When
            False, differing field sets fail the tracing.
        coerce_numbers: Unify any mix of integers and floats instead of
            failing, see `pycolumnar.coercion.merge_types`.
        allow_null_fields: Type fields observed only as null as Null
            instead of failing.
        map_as_struct: Trace mappings as structs keyed by their string keys,
            otherwise as Map fields.
        guess_dates: Trace string fields whose values all follow the naive
            or UTC timestamp profile as Date64.
    """

    allow_null_root: bool = False
    merge_unknown_struct_fields: bool = False
    coerce_numbers: bool = False
    allow_null_fields: bool = False
    map_as_struct: bool = True
    guess_dates: bool = False

    def replace(self, **changes) -> "TracingOptions":
        return dataclasses.replace(self, **changes)


class Tracer(EventSink):
    """Accumulates the schema of all values seen at one path."""

    def __init__(self, path: str, options: TracingOptions):
        self.path = path
        self.options = options
        self.nullable = False
        self.inner = _UnknownTracer(self)

    def accept(self, event):
        kind = event.kind
        inner = self.inner
        if inner.at_start:
            if kind == EventKind.NULL:
                self.nullable = True
                return
            if kind == EventKind.DEFAULT:
                return
            if isinstance(inner, _UnknownTracer):
                inner = self.inner = _tracer_for_event(self, event)
        inner.accept(event)

    def finish(self):
        if not self.inner.at_start:
            raise ProtocolError(f"Incomplete value at {self.path} while finishing the tracing")
        self.inner.finish()

    def to_field(self, name: str) -> Field:
        return self.inner.to_field(name, self.nullable)

    def fail(self, message):
        raise SchemaInferenceError(f"{message} at {self.path}")


def _tracer_for_event(tracer, event):
    kind = event.kind
    if kind in SCALAR_KINDS:
        return _PrimitiveTracer(tracer)
    if kind == EventKind.START_STRUCT:
        return _StructTracer(tracer)
    if kind == EventKind.START_MAP:
        if tracer.options.map_as_struct:
            return _StructTracer(tracer)
        return _MapTracer(tracer)
    if kind == EventKind.START_TUPLE:
        return _TupleTracer(tracer)
    if kind == EventKind.START_LIST:
        return _ListTracer(tracer)
    if kind == EventKind.VARIANT:
        return _UnionTracer(tracer)
    raise ProtocolError(f"Invalid event {event} at the start of a value at {tracer.path}")


class _UnknownTracer:
    kind = "unknown"
    at_start = True

    def __init__(self, tracer):
        self.tracer = tracer

    def accept(self, event):
        raise ProtocolError(f"Invalid event {event} at {self.tracer.path}")

    def finish(self):
        pass

    def to_field(self, name, nullable):
        if not self.tracer.options.allow_null_fields:
            self.tracer.fail("Cannot determine the type, only nulls or no values were observed")
        return Field(name, DataType.NULL, True)


class _PrimitiveTracer:
    kind = "primitive"
    at_start = True

    def __init__(self, tracer):
        self.tracer = tracer
        self.data_type = None
        self.naive_dates = True
        self.utc_dates = True

    def accept(self, event):
        kind = event.kind
        if kind not in SCALAR_KINDS:
            self.tracer.fail(f"Incompatible event {event} for a primitive of type {type_name(self.data_type)}")
        data_type = EVENT_TYPES[kind]
        if self.data_type is None:
            self.data_type = data_type
        else:
            merged = merge_types(self.data_type, data_type, self.tracer.options.coerce_numbers)
            if merged is None:
                self.tracer.fail(f"Incompatible types {type_name(self.data_type)} and {type_name(data_type)}")
            self.data_type = merged
        if kind == EventKind.STR and self.tracer.options.guess_dates:
            self.naive_dates = self.naive_dates and is_naive_timestamp(event.value)
            self.utc_dates = self.utc_dates and is_utc_timestamp(event.value)

    def finish(self):
        pass

    def to_field(self, name, nullable):
        if self.data_type == DataType.UTF8 and self.tracer.options.guess_dates:
            if self.naive_dates:
                return Field(name, DataType.DATE64, nullable).with_strategy(Strategy.NAIVE_STR_AS_DATE64)
            if self.utc_dates:
                return Field(name, DataType.DATE64, nullable).with_strategy(Strategy.UTC_STR_AS_DATE64)
        return Field(name, self.data_type, nullable)


class _ContainerTracer:
    """Routes the events of one child value while tracking the nesting depth."""

    def __init__(self, tracer):
        self.tracer = tracer
        self.at_start = True
        self._depth = 0

    def _route(self, child, event):
        """Forward `event` to `child`, returning True once the child value is complete."""
        kind = event.kind
        if kind in START_KINDS:
            self._depth += 1
        elif kind in END_KINDS:
            if self._depth == 0:
                raise ProtocolError(f"Unexpected event {event} where a value was expected at {self.tracer.path}")
            self._depth -= 1
        child.accept(event)
        return self._depth == 0 and kind != EventKind.VARIANT

    def _child(self, name):
        return Tracer(f"{self.tracer.path}.{name}", self.tracer.options)

    def finish(self):
        for child in self.children():
            child.finish()

    def children(self):
        return []


class _ListTracer(_ContainerTracer):
    kind = "list"

    def __init__(self, tracer):
        super().__init__(tracer)
        self.item = self._child("element")

    def accept(self, event):
        if self.at_start:
            if event.kind != EventKind.START_LIST:
                self.tracer.fail(f"Incompatible event {event} for a list")
            self.at_start = False
        elif self._depth == 0 and event.kind == EventKind.END_LIST:
            self.at_start = True
        else:
            self._route(self.item, event)

    def children(self):
        return [self.item]

    def to_field(self, name, nullable):
        return Field(name, DataType.LIST, nullable, [self.item.to_field("element")])


class _StructTracer(_ContainerTracer):
    kind = "struct"
    _KEY = 0
    _VALUE = 1

    def __init__(self, tracer):
        super().__init__(tracer)
        self.fields = []
        self.index = {}
        self.from_map = None
        self.records = 0
        self._end = None
        self._state = self._KEY
        self._active = None
        self._seen = set()

    def accept(self, event):
        kind = event.kind
        if self.at_start:
            if kind == EventKind.START_STRUCT:
                self._end = EventKind.END_STRUCT
            elif kind == EventKind.START_MAP and self.tracer.options.map_as_struct:
                self._end = EventKind.END_MAP
            else:
                self.tracer.fail(f"Incompatible event {event} for a struct")
            if self.from_map is None:
                self.from_map = kind == EventKind.START_MAP
            self.at_start = False
            self._state = self._KEY
            self._seen = set()
        elif self._state == self._KEY:
            if kind == self._end:
                self._close_record()
            elif kind == EventKind.STR:
                self._select(event.value)
            else:
                self.tracer.fail(f"Expected a string key, got {event} (struct keys must be strings)")
        elif self._route(self._active, event):
            self._state = self._KEY

    def _select(self, key):
        if key in self._seen:
            raise ProtocolError(f"Duplicate field {key!r} at {self.tracer.path}")
        self._seen.add(key)
        if key not in self.index:
            child = self._child(key)
            if self.records > 0:
                if not self.tracer.options.merge_unknown_struct_fields:
                    self.tracer.fail(f"Unknown field {key!r} not present in earlier records")
                child.nullable = True
            self.index[key] = len(self.fields)
            self.fields.append((key, child))
        self._active = self.fields[self.index[key]][1]
        self._state = self._VALUE

    def _close_record(self):
        if len(self._seen) != len(self.fields):
            missing = [key for key, _ in self.fields if key not in self._seen]
            if not self.tracer.options.merge_unknown_struct_fields:
                self.tracer.fail(f"Missing fields {missing}")
            for key, child in self.fields:
                if key in missing:
                    child.nullable = True
        self.records += 1
        self.at_start = True

    def children(self):
        return [child for _, child in self.fields]

    def to_field(self, name, nullable):
        children = [child.to_field(key) for key, child in self.fields]
        field = Field(name, DataType.STRUCT, nullable, children)
        if self.from_map:
            field = field.with_strategy(Strategy.MAP_AS_STRUCT)
        return field


class _TupleTracer(_ContainerTracer):
    kind = "tuple"

    def __init__(self, tracer):
        super().__init__(tracer)
        self.items = []
        self.records = 0
        self._position = 0

    def accept(self, event):
        kind = event.kind
        if self.at_start:
            if kind != EventKind.START_TUPLE:
                self.tracer.fail(f"Incompatible event {event} for a tuple")
            self.at_start = False
            self._position = 0
        elif self._depth == 0 and kind == EventKind.END_TUPLE:
            if self._position != len(self.items):
                self.tracer.fail(f"Inconsistent tuple length {self._position}, expected {len(self.items)}")
            self.records += 1
            self.at_start = True
        else:
            if self._position == len(self.items):
                if self.records > 0:
                    self.tracer.fail(f"Inconsistent tuple length, expected {len(self.items)} items")
                self.items.append(self._child(str(self._position)))
            if self._route(self.items[self._position], event):
                self._position += 1

    def children(self):
        return list(self.items)

    def to_field(self, name, nullable):
        children = [item.to_field(str(i)) for i, item in enumerate(self.items)]
        return Field(name, DataType.STRUCT, nullable, children).with_strategy(Strategy.TUPLE_AS_STRUCT)


class _MapTracer(_ContainerTracer):
    kind = "map"

    def __init__(self, tracer):
        super().__init__(tracer)
        self.key = self._child("key")
        self.value = self._child("value")
        self._in_value = False

    def accept(self, event):
        if self.at_start:
            if event.kind != EventKind.START_MAP:
                self.tracer.fail(f"Incompatible event {event} for a map")
            self.at_start = False
            self._in_value = False
        elif self._depth == 0 and not self._in_value and event.kind == EventKind.END_MAP:
            self.at_start = True
        elif self._in_value:
            if self._route(self.value, event):
                self._in_value = False
        elif self._route(self.key, event):
            self._in_value = True

    def children(self):
        return [self.key, self.value]

    def to_field(self, name, nullable):
        key = self.key.to_field("key")
        if key.nullable:
            self.key.fail("Map keys must not be null")
        return Field(name, DataType.MAP, nullable, [key, self.value.to_field("value")])


class _UnionTracer(_ContainerTracer):
    kind = "union"

    def __init__(self, tracer):
        super().__init__(tracer)
        self.variants = []
        self._active = None

    def accept(self, event):
        if self.at_start:
            if event.kind != EventKind.VARIANT:
                self.tracer.fail(f"Incompatible event {event} for a union")
            name, index = event.value, event.index
            if index is None or index < 0:
                raise ProtocolError(f"Invalid variant index {index} for {name!r} at {self.tracer.path}")
            while len(self.variants) <= index:
                self.variants.append(None)
            if self.variants[index] is None:
                self.variants[index] = (name, self._child(name))
            elif self.variants[index][0] != name:
                self.tracer.fail(f"Variant {index} observed with names {self.variants[index][0]!r} and {name!r}")
            self._active = self.variants[index][1]
            self.at_start = False
        elif self._route(self._active, event):
            self.at_start = True

    def children(self):
        return [variant[1] for variant in self.variants if variant is not None]

    def to_field(self, name, nullable):
        if nullable:
            self.tracer.fail("Nullable unions are not supported")
        children = []
        for index, variant in enumerate(self.variants):
            if variant is None:
                self.tracer.fail(f"No sample for union variant {index}, include every variant in the samples")
            variant_name, tracer = variant
            if isinstance(tracer.inner, _UnknownTracer):
                # unit variant
                children.append(Field(variant_name, DataType.NULL, True))
            else:
                children.append(tracer.to_field(variant_name))
        return Field(name, DataType.UNION, False, children)


class RecordsTracer(EventSink):
    """Traces a sequence of records (the outer sequence already stripped) into top level fields."""

    def __init__(self, options: TracingOptions):
        self.options = options
        self.root = Tracer("$", options)

    def accept(self, event):
        self.root.accept(event)

    def finish(self):
        self.root.finish()

    def to_fields(self):
        inner = self.root.inner
        if isinstance(inner, _UnknownTracer):
            raise SchemaInferenceError("No records found to determine the schema")
        if not isinstance(inner, _StructTracer):
            raise SchemaInferenceError(f"Unexpected root type {inner.kind}, records must be structs")
        if self.root.nullable and not self.options.allow_null_root:
            raise SchemaInferenceError("Null records are not allowed, set allow_null_root to accept them")
        fields = self.root.to_field("root").children
        if self.root.nullable:
            for field in fields:
                field.nullable = True
        logger.debug("Traced %d fields from %d records", len(fields), inner.records)
        return fields


class FieldTracer(EventSink):
    """Traces a sequence of items (the outer sequence already stripped) into one field."""

    def __init__(self, name: str, options: TracingOptions):
        self.name = name
        self.options = options
        self.root = Tracer("$", options)

    def accept(self, event):
        self.root.accept(event)

    def finish(self):
        self.root.finish()

    def to_field(self):
        if isinstance(self.root.inner, _UnknownTracer):
            if not self.options.allow_null_root:
                raise SchemaInferenceError("No non-null items found to determine the type, set allow_null_root to accept a Null field")
            return Field(self.name, DataType.NULL, True)
        field = self.root.to_field(self.name)
        logger.debug("Traced field %r", field)
        return field
