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
Event sinks building one Arrow array per field.

Every builder is a small state machine consuming the events of one value
at a time. Container builders own their child builders and route the
events of child values to them, tracking the nesting depth to find the
end of each child value.
"""

import logging
from typing import List, Sequence

from pycolumnar import _arrow
from pycolumnar.coercion import (
    coerce_int,
    coerce_scalar,
    parse_naive_timestamp,
    parse_utc_timestamp,
    zero_value,
)
from pycolumnar.error import (
    ColumnarTypeMismatchError,
    ProtocolError,
    UnsupportedTypeError,
    fail_event,
)
from pycolumnar.event import (
    DEFAULT,
    END_KINDS,
    NULL,
    START_KINDS,
    SCALAR_KINDS,
    Event,
    EventKind,
    EventSink,
)
from pycolumnar.schema import Field
from pycolumnar.types import DataType, Strategy, is_primitive, type_name

logger = logging.getLogger(__name__)

_START = "Start"
_KEY = "Key"
_VALUE = "Value"
_ITEMS = "Items"


class ArrayBuilder(EventSink):
    """Base class of all builders, one instance per field."""

    def __init__(self, field: Field):
        self.field = field

    def accept(self, event: Event):
        raise NotImplementedError

    def accept_default(self):
        self.accept(DEFAULT)

    def finish(self):
        """Check that no value is in progress."""

    def into_array(self):
        """Wrap the accumulated buffers into an Arrow array."""
        raise NotImplementedError

    def reset(self):
        """Drop the accumulated buffers and return to the start state."""
        raise NotImplementedError

    def build_array(self):
        self.finish()
        array = self.into_array()
        self.reset()
        return array

    def _null_allowed(self):
        if not self.field.nullable:
            raise ColumnarTypeMismatchError(f"Null value for non-nullable field {self.field.name!r}")

    def __str__(self):
        return f"{type(self).__name__}({self.field.name!r})"


class NullBuilder(ArrayBuilder):
    def __init__(self, field):
        super().__init__(field)
        self.length = 0

    def accept(self, event):
        if event.kind != EventKind.NULL and event.kind != EventKind.DEFAULT:
            fail_event(self, event, _START)
        self.length += 1

    def into_array(self):
        return _arrow.primitive_array(self.field, [False] * self.length, None)

    def reset(self):
        self.length = 0


class PrimitiveBuilder(ArrayBuilder):
    def __init__(self, field):
        super().__init__(field)
        self._zero = zero_value(field.data_type)
        self.validity = []
        self.values = []

    def accept(self, event):
        kind = event.kind
        if kind in SCALAR_KINDS:
            self.values.append(coerce_scalar(kind, event.value, self.field.data_type, self.field.name))
            self.validity.append(True)
        elif kind == EventKind.NULL:
            self._null_allowed()
            self.values.append(self._zero)
            self.validity.append(False)
        elif kind == EventKind.DEFAULT:
            self.values.append(self._zero)
            self.validity.append(True)
        else:
            fail_event(self, event, _START)

    def into_array(self):
        return _arrow.primitive_array(self.field, self.validity, self.values)

    def reset(self):
        self.validity = []
        self.values = []


class DateTimeStrBuilder(ArrayBuilder):
    """Parses timestamp strings into milliseconds before handing them to the wrapped builder."""

    parse = None

    def __init__(self, field, inner: ArrayBuilder):
        super().__init__(field)
        self.inner = inner

    def accept(self, event):
        if event.kind == EventKind.STR:
            event = Event(EventKind.I64, type(self).parse(event.value))
        self.inner.accept(event)

    def finish(self):
        self.inner.finish()

    def into_array(self):
        return self.inner.into_array()

    def reset(self):
        self.inner.reset()


class NaiveDateTimeStrBuilder(DateTimeStrBuilder):
    parse = staticmethod(parse_naive_timestamp)


class UtcDateTimeStrBuilder(DateTimeStrBuilder):
    parse = staticmethod(parse_utc_timestamp)


class DictionaryUtf8Builder(ArrayBuilder):
    """Interns strings in first-seen order and records the index of each value."""

    def __init__(self, field):
        super().__init__(field)
        self._key_type = field.children[0].data_type
        self.validity = []
        self.keys = []
        self.dictionary = []
        self.index = {}

    def _intern(self, value):
        key = self.index.get(value)
        if key is None:
            key = coerce_int(len(self.dictionary), self._key_type, self.field.name)
            self.index[value] = key
            self.dictionary.append(value)
        return key

    def accept(self, event):
        kind = event.kind
        if kind == EventKind.STR:
            self.keys.append(self._intern(event.value))
            self.validity.append(True)
        elif kind == EventKind.NULL:
            self._null_allowed()
            self.keys.append(0)
            self.validity.append(False)
        elif kind == EventKind.DEFAULT:
            self.keys.append(self._intern(""))
            self.validity.append(True)
        elif kind in SCALAR_KINDS:
            raise ColumnarTypeMismatchError(f"Cannot store {event} in dictionary field {self.field.name!r}")
        else:
            fail_event(self, event, _START)

    def into_array(self):
        return _arrow.dictionary_array(self.field, self.validity, self.keys, self.dictionary)

    def reset(self):
        self.validity = []
        self.keys = []
        self.dictionary = []
        self.index = {}


class _NestedBuilder(ArrayBuilder):
    def __init__(self, field):
        super().__init__(field)
        self.state = _START
        self.depth = 0

    def _route(self, child, event):
        """Forward `event` to `child`, returning True once the child value is complete."""
        kind = event.kind
        if kind in START_KINDS:
            self.depth += 1
        elif kind in END_KINDS:
            if self.depth == 0:
                fail_event(self, event, self.state)
            self.depth -= 1
        child.accept(event)
        return self.depth == 0 and kind != EventKind.VARIANT

    def finish(self):
        if self.state != _START:
            raise ProtocolError(f"Invalid state {self.state} in finish [{self}]")
        for child in self.children():
            child.finish()

    def children(self) -> List[ArrayBuilder]:
        return []

    def reset(self):
        self.state = _START
        self.depth = 0
        for child in self.children():
            child.reset()


class ListBuilder(_NestedBuilder):
    def __init__(self, field, item: ArrayBuilder):
        super().__init__(field)
        self.item = item
        self.validity = []
        self.offsets = [0]
        self.length = 0

    def accept(self, event):
        kind = event.kind
        if self.state == _START:
            if kind == EventKind.START_LIST:
                self.state = _ITEMS
            elif kind == EventKind.NULL:
                self._null_allowed()
                self.offsets.append(self.length)
                self.validity.append(False)
            elif kind == EventKind.DEFAULT:
                self.offsets.append(self.length)
                self.validity.append(True)
            else:
                fail_event(self, event, self.state)
        elif self.depth == 0 and kind == EventKind.END_LIST:
            self.offsets.append(self.length)
            self.validity.append(True)
            self.state = _START
        elif self._route(self.item, event):
            self.length += 1

    def children(self):
        return [self.item]

    def into_array(self):
        return _arrow.list_array(self.field, self.validity, self.offsets, self.item.into_array())

    def reset(self):
        super().reset()
        self.validity = []
        self.offsets = [0]
        self.length = 0


class StructBuilder(_NestedBuilder):
    """
    Builds a struct from struct (or map) framed events with a string key
    before every value. Keys are matched by name, children that received no
    value when the struct is closed get a null.
    """

    def __init__(self, field, builders: Sequence[ArrayBuilder], records=False):
        super().__init__(field)
        self.builders = list(builders)
        self.records = records
        self.validity = []
        self._index = {builder.field.name: i for i, builder in enumerate(self.builders)}
        self._seen = [False] * len(self.builders)
        self._end = None
        self._active = None

    def accept(self, event):
        kind = event.kind
        if self.state == _KEY:
            if kind == self._end:
                self._close()
            elif kind == EventKind.STR:
                self._select(event.value)
            else:
                fail_event(self, event, self.state)
        elif self.state == _VALUE:
            if self._route(self._active, event):
                self.state = _KEY
        elif kind == EventKind.START_STRUCT or kind == EventKind.START_MAP:
            self._end = EventKind.END_STRUCT if kind == EventKind.START_STRUCT else EventKind.END_MAP
            self._seen = [False] * len(self.builders)
            self.state = _KEY
        elif kind == EventKind.NULL:
            if self.records:
                # a null record is a row of nulls
                for builder in self.builders:
                    builder.accept(NULL)
            else:
                self._null_allowed()
                for builder in self.builders:
                    builder.accept_default()
            self.validity.append(False)
        elif kind == EventKind.DEFAULT:
            for builder in self.builders:
                builder.accept_default()
            self.validity.append(True)
        else:
            fail_event(self, event, self.state)

    def _select(self, name):
        index = self._index.get(name)
        if index is None:
            raise ProtocolError(f"Unknown field {name!r} for struct {self.field.name!r}")
        if self._seen[index]:
            raise ProtocolError(f"Duplicate field {name!r} for struct {self.field.name!r}")
        self._seen[index] = True
        self._active = self.builders[index]
        self.state = _VALUE

    def _close(self):
        missing = [builder for builder, seen in zip(self.builders, self._seen) if not seen]
        for builder in missing:
            if not builder.field.nullable:
                raise ProtocolError(f"Missing non-nullable field {builder.field.name!r} for struct {self.field.name!r}")
        for builder in missing:
            builder.accept(NULL)
        self.validity.append(True)
        self.state = _START

    def children(self):
        return self.builders

    def into_array(self):
        return _arrow.struct_array(self.field, self.validity, [builder.into_array() for builder in self.builders])

    def reset(self):
        super().reset()
        self.validity = []

    def build_arrays(self):
        """Build one array per child, used for the top level records."""
        self.finish()
        arrays = [builder.into_array() for builder in self.builders]
        logger.debug("Built %d arrays with %d rows", len(arrays), len(self.validity))
        self.reset()
        return arrays


class TupleStructBuilder(_NestedBuilder):
    """Builds a struct from tuple framed events, children are visited by position."""

    def __init__(self, field, builders: Sequence[ArrayBuilder]):
        super().__init__(field)
        self.builders = list(builders)
        self.validity = []
        self.position = 0

    def accept(self, event):
        kind = event.kind
        if self.state == _VALUE:
            if self.depth == 0 and kind == EventKind.END_TUPLE:
                if self.position != len(self.builders):
                    raise ProtocolError(f"Tuple {self.field.name!r} closed after {self.position} of {len(self.builders)} items")
                self.validity.append(True)
                self.state = _START
                return
            if self.position >= len(self.builders):
                raise ProtocolError(f"Too many items for tuple {self.field.name!r} with {len(self.builders)} items")
            if self._route(self.builders[self.position], event):
                self.position += 1
        elif kind == EventKind.START_TUPLE:
            self.state = _VALUE
            self.position = 0
        elif kind == EventKind.NULL:
            self._null_allowed()
            for builder in self.builders:
                builder.accept_default()
            self.validity.append(False)
        elif kind == EventKind.DEFAULT:
            for builder in self.builders:
                builder.accept_default()
            self.validity.append(True)
        else:
            fail_event(self, event, self.state)

    def children(self):
        return self.builders

    def into_array(self):
        return _arrow.struct_array(self.field, self.validity, [builder.into_array() for builder in self.builders])

    def reset(self):
        super().reset()
        self.validity = []
        self.position = 0


class UnionBuilder(_NestedBuilder):
    def __init__(self, field, builders: Sequence[ArrayBuilder]):
        super().__init__(field)
        self.builders = list(builders)
        self.type_ids = []
        self.offsets = []
        self.counts = [0] * len(self.builders)
        self._active = None

    def _select(self, index):
        if index is None or not 0 <= index < len(self.builders):
            raise ProtocolError(f"Invalid variant index {index} for union {self.field.name!r} with {len(self.builders)} variants")
        self.type_ids.append(index)
        self.offsets.append(self.counts[index])
        self.counts[index] += 1
        return self.builders[index]

    def accept(self, event):
        kind = event.kind
        if self.state == _VALUE:
            if self._route(self._active, event):
                self.state = _START
        elif kind == EventKind.VARIANT:
            self._active = self._select(event.index)
            self.state = _VALUE
        elif kind == EventKind.DEFAULT:
            self._select(0).accept_default()
        elif kind == EventKind.NULL:
            raise ColumnarTypeMismatchError(f"Union field {self.field.name!r} cannot hold null values")
        else:
            fail_event(self, event, self.state)

    def children(self):
        return self.builders

    def into_array(self):
        return _arrow.union_array(self.field, self.type_ids, self.offsets, [builder.into_array() for builder in self.builders])

    def reset(self):
        super().reset()
        self.type_ids = []
        self.offsets = []
        self.counts = [0] * len(self.builders)


class MapBuilder(_NestedBuilder):
    def __init__(self, field, key: ArrayBuilder, value: ArrayBuilder):
        super().__init__(field)
        self.key = key
        self.value = value
        self.validity = []
        self.offsets = [0]
        self.length = 0

    def accept(self, event):
        kind = event.kind
        if self.state == _KEY:
            if self.depth == 0 and kind == EventKind.END_MAP:
                self.offsets.append(self.length)
                self.validity.append(True)
                self.state = _START
            elif self._route(self.key, event):
                self.state = _VALUE
        elif self.state == _VALUE:
            if self._route(self.value, event):
                self.length += 1
                self.state = _KEY
        elif kind == EventKind.START_MAP:
            self.state = _KEY
        elif kind == EventKind.NULL:
            self._null_allowed()
            self.offsets.append(self.length)
            self.validity.append(False)
        elif kind == EventKind.DEFAULT:
            self.offsets.append(self.length)
            self.validity.append(True)
        else:
            fail_event(self, event, self.state)

    def children(self):
        return [self.key, self.value]

    def into_array(self):
        return _arrow.map_array(self.field, self.validity, self.offsets, self.key.into_array(), self.value.into_array())

    def reset(self):
        super().reset()
        self.validity = []
        self.offsets = [0]
        self.length = 0


def _primitive_builder(field):
    if field.data_type == DataType.NULL:
        return NullBuilder(field)
    if field.strategy == Strategy.NAIVE_STR_AS_DATE64:
        return NaiveDateTimeStrBuilder(field, PrimitiveBuilder(field))
    if field.strategy == Strategy.UTC_STR_AS_DATE64:
        return UtcDateTimeStrBuilder(field, PrimitiveBuilder(field))
    return PrimitiveBuilder(field)


def _list_builder(field):
    return ListBuilder(field, build_array_builder(field.children[0]))


def _struct_builder(field):
    builders = [build_array_builder(child) for child in field.children]
    if field.strategy == Strategy.TUPLE_AS_STRUCT:
        return TupleStructBuilder(field, builders)
    return StructBuilder(field, builders)


def _union_builder(field):
    return UnionBuilder(field, [build_array_builder(child) for child in field.children])


def _map_builder(field):
    key, value = field.children
    return MapBuilder(field, build_array_builder(key), build_array_builder(value))


_FACTORIES = {
    DataType.LIST: _list_builder,
    DataType.LARGE_LIST: _list_builder,
    DataType.STRUCT: _struct_builder,
    DataType.UNION: _union_builder,
    DataType.MAP: _map_builder,
    DataType.DICTIONARY: DictionaryUtf8Builder,
}


def build_array_builder(field: Field) -> ArrayBuilder:
    """Create the builder tree for `field`."""
    if is_primitive(field.data_type):
        return _primitive_builder(field)
    factory = _FACTORIES.get(field.data_type)
    if factory is None:
        raise UnsupportedTypeError(f"No builder for field {field.name!r} of type {type_name(field.data_type)}")
    return factory(field)


def records_field(fields: Sequence[Field]) -> Field:
    return Field("root", DataType.STRUCT, False, fields)


def build_records_builder(fields: Sequence[Field]) -> StructBuilder:
    """Create a builder for a sequence of records, one child per top level field."""
    return StructBuilder(records_field(fields), [build_array_builder(field) for field in fields], records=True)
