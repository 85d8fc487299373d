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
Structural events exchanged between the traversal of Python values and
the conversion engine.

A value is described by a well nested stream of events: scalars for
leaves, ``Start*``/``End*`` pairs for containers, ``Variant`` for the
discriminant of a tagged union and ``Default`` for a present value that
should take the zero value of its column.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from pycolumnar.error import ProtocolError


class EventKind:
    """Tags of all events understood by tracers, builders and interpreters."""

    # an absent value in a nullable slot.
    NULL = 0
    # a present value that takes the zero value of its column.
    DEFAULT = 1
    BOOL = 2
    I8 = 3
    I16 = 4
    I32 = 5
    I64 = 6
    U8 = 7
    U16 = 8
    U32 = 9
    U64 = 10
    F32 = 11
    F64 = 12
    # a UTF-8 text value.
    STR = 13
    # a byte string value.
    BYTES = 14
    START_STRUCT = 15
    END_STRUCT = 16
    START_TUPLE = 17
    END_TUPLE = 18
    START_LIST = 19
    END_LIST = 20
    START_MAP = 21
    END_MAP = 22
    # the discriminant of a tagged union, carries the variant name and index.
    VARIANT = 23


_KIND_NAMES = {
    EventKind.NULL: "Null",
    EventKind.DEFAULT: "Default",
    EventKind.BOOL: "Bool",
    EventKind.I8: "I8",
    EventKind.I16: "I16",
    EventKind.I32: "I32",
    EventKind.I64: "I64",
    EventKind.U8: "U8",
    EventKind.U16: "U16",
    EventKind.U32: "U32",
    EventKind.U64: "U64",
    EventKind.F32: "F32",
    EventKind.F64: "F64",
    EventKind.STR: "Str",
    EventKind.BYTES: "Bytes",
    EventKind.START_STRUCT: "StartStruct",
    EventKind.END_STRUCT: "EndStruct",
    EventKind.START_TUPLE: "StartTuple",
    EventKind.END_TUPLE: "EndTuple",
    EventKind.START_LIST: "StartList",
    EventKind.END_LIST: "EndList",
    EventKind.START_MAP: "StartMap",
    EventKind.END_MAP: "EndMap",
    EventKind.VARIANT: "Variant",
}


def kind_name(kind: int) -> str:
    return _KIND_NAMES.get(kind, str(kind))


INT_KINDS = frozenset(
    {
        EventKind.I8,
        EventKind.I16,
        EventKind.I32,
        EventKind.I64,
        EventKind.U8,
        EventKind.U16,
        EventKind.U32,
        EventKind.U64,
    }
)
FLOAT_KINDS = frozenset({EventKind.F32, EventKind.F64})
NUMBER_KINDS = INT_KINDS | FLOAT_KINDS
SCALAR_KINDS = NUMBER_KINDS | {EventKind.BOOL, EventKind.STR, EventKind.BYTES}
START_KINDS = frozenset(
    {
        EventKind.START_STRUCT,
        EventKind.START_TUPLE,
        EventKind.START_LIST,
        EventKind.START_MAP,
    }
)
END_KINDS = frozenset(
    {
        EventKind.END_STRUCT,
        EventKind.END_TUPLE,
        EventKind.END_LIST,
        EventKind.END_MAP,
    }
)
MATCHING_END = {
    EventKind.START_STRUCT: EventKind.END_STRUCT,
    EventKind.START_TUPLE: EventKind.END_TUPLE,
    EventKind.START_LIST: EventKind.END_LIST,
    EventKind.START_MAP: EventKind.END_MAP,
}


class Event:
    __slots__ = ("kind", "value", "index")

    def __init__(self, kind: int, value=None, index: Optional[int] = None):
        self.kind = kind
        self.value = value
        self.index = index

    @property
    def name(self) -> str:
        return _KIND_NAMES[self.kind]

    def __eq__(self, other):
        if not isinstance(other, Event):
            return NotImplemented
        return self.kind == other.kind and self.value == other.value and self.index == other.index

    def __hash__(self):
        return hash((self.kind, self.value, self.index))

    def __repr__(self):
        if self.kind == EventKind.VARIANT:
            return f"Variant({self.value!r}, {self.index})"
        if self.kind in SCALAR_KINDS:
            return f"{self.name}({self.value!r})"
        return self.name

    __str__ = __repr__


NULL = Event(EventKind.NULL)
DEFAULT = Event(EventKind.DEFAULT)
START_STRUCT = Event(EventKind.START_STRUCT)
END_STRUCT = Event(EventKind.END_STRUCT)
START_TUPLE = Event(EventKind.START_TUPLE)
END_TUPLE = Event(EventKind.END_TUPLE)
START_LIST = Event(EventKind.START_LIST)
END_LIST = Event(EventKind.END_LIST)
START_MAP = Event(EventKind.START_MAP)
END_MAP = Event(EventKind.END_MAP)


def scalar(kind: int, value) -> Event:
    return Event(kind, value)


def string(value: str) -> Event:
    return Event(EventKind.STR, value)


def variant(name: str, index: int) -> Event:
    return Event(EventKind.VARIANT, name, index)


class EventSink(ABC):
    """Consumer of an event stream."""

    @abstractmethod
    def accept(self, event: Event):
        """Consume one event, raising on events not allowed in the current state."""

    def finish(self):
        """Signal the end of the stream."""


class EventSource(ABC):
    """Producer of an event stream."""

    @abstractmethod
    def next(self) -> Optional[Event]:
        """Return the next event, or None once the stream is exhausted."""

    def __iter__(self):
        while True:
            event = self.next()
            if event is None:
                return
            yield event


class CollectingSink(EventSink):
    def __init__(self):
        self.events: List[Event] = []

    def accept(self, event):
        self.events.append(event)


class IterSource(EventSource):
    def __init__(self, events: Iterable[Event]):
        self._events = iter(events)

    def next(self):
        return next(self._events, None)


class StripOuterSequenceSink(EventSink):
    """
    Forward the items of an outer sequence to the wrapped sink.

    The first event must open a list (or tuple), its matching end event is
    swallowed and nothing may follow it.
    """

    _WAITING = 0
    _ITEMS = 1
    _CLOSED = 2

    def __init__(self, wrapped: EventSink):
        self.wrapped = wrapped
        self._state = self._WAITING
        self._end_kind = None
        self._depth = 0

    def accept(self, event):
        kind = event.kind
        if self._state == self._ITEMS:
            if self._depth == 0 and kind == self._end_kind:
                self._state = self._CLOSED
                return
            if kind in START_KINDS:
                self._depth += 1
            elif kind in END_KINDS:
                if self._depth == 0:
                    raise ProtocolError(f"Unbalanced event {event} in outer sequence")
                self._depth -= 1
            self.wrapped.accept(event)
        elif self._state == self._WAITING:
            if kind not in (EventKind.START_LIST, EventKind.START_TUPLE):
                raise ProtocolError(f"Expected an outer sequence, got {event}")
            self._end_kind = MATCHING_END[kind]
            self._state = self._ITEMS
        else:
            raise ProtocolError(f"Unexpected event {event} after the end of the outer sequence")

    def finish(self):
        if self._state != self._CLOSED:
            raise ProtocolError("Outer sequence was not closed")
        self.wrapped.finish()

    def into_inner(self) -> EventSink:
        return self.wrapped


class AddOuterSequenceSource(EventSource):
    """Wrap the events of the wrapped source into an outer list."""

    def __init__(self, wrapped: EventSource):
        self.wrapped = wrapped
        self._state = 0

    def next(self):
        if self._state == 0:
            self._state = 1
            return START_LIST
        if self._state == 1:
            event = self.wrapped.next()
            if event is not None:
                return event
            self._state = 2
            return END_LIST
        return None


def feed(sink: EventSink, events: Iterable[Event]):
    for event in events:
        sink.accept(event)
