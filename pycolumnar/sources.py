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
Event sources replaying the content of extracted buffers row by row.
"""

import logging
from typing import Sequence

from pycolumnar import event as ev
from pycolumnar.coercion import TYPE_EVENTS, format_naive_timestamp, format_utc_timestamp
from pycolumnar.error import UnsupportedTypeError
from pycolumnar.event import Event, EventSource
from pycolumnar.extraction import BufferView
from pycolumnar.types import DataType, LIST_TYPES, Strategy, is_primitive, type_name

logger = logging.getLogger(__name__)

_DATE_FORMATS = {
    Strategy.NAIVE_STR_AS_DATE64: format_naive_timestamp,
    Strategy.UTC_STR_AS_DATE64: format_utc_timestamp,
}


def _emit(view: BufferView, index: int):
    if not view.is_valid(index):
        yield ev.NULL
        return
    field = view.field
    data_type = field.data_type
    if data_type == DataType.NULL:
        yield ev.NULL
    elif is_primitive(data_type):
        value = view.values[index]
        date_format = _DATE_FORMATS.get(field.strategy)
        if date_format is not None:
            yield ev.string(date_format(value))
        else:
            yield Event(TYPE_EVENTS[data_type], value)
    elif data_type == DataType.DICTIONARY:
        yield ev.string(view.dictionary[view.values[index]])
    elif data_type in LIST_TYPES:
        yield ev.START_LIST
        item = view.children[0]
        for position in range(view.offsets[index], view.offsets[index + 1]):
            yield from _emit(item, position)
        yield ev.END_LIST
    elif data_type == DataType.STRUCT:
        yield from _emit_struct(view, index)
    elif data_type == DataType.MAP:
        yield ev.START_MAP
        key, value = view.children
        for position in range(view.offsets[index], view.offsets[index + 1]):
            yield from _emit(key, position)
            yield from _emit(value, position)
        yield ev.END_MAP
    elif data_type == DataType.UNION:
        type_id = view.values[index]
        child = view.children[type_id]
        yield ev.variant(child.field.name, type_id)
        yield from _emit(child, view.offsets[index])
    else:
        raise UnsupportedTypeError(f"Cannot replay field {view.path!r} of type {type_name(data_type)}")


def _emit_struct(view, index):
    strategy = view.field.strategy
    if strategy == Strategy.TUPLE_AS_STRUCT:
        yield ev.START_TUPLE
        for child in view.children:
            yield from _emit(child, index)
        yield ev.END_TUPLE
        return
    start, end = (ev.START_MAP, ev.END_MAP) if strategy == Strategy.MAP_AS_STRUCT else (ev.START_STRUCT, ev.END_STRUCT)
    yield start
    for child in view.children:
        yield ev.string(child.field.name)
        yield from _emit(child, index)
    yield end


def _num_rows(views):
    lengths = [view.length for view in views]
    if not lengths:
        return 0
    num_rows = min(lengths)
    if num_rows != max(lengths):
        logger.warning(
            "Arrays of different lengths %s, reading only the first %d rows",
            dict((view.path, view.length) for view in views),
            num_rows,
        )
    return num_rows


class _GeneratorSource(EventSource):
    def __init__(self):
        self._events = self._generate()

    def _generate(self):
        raise NotImplementedError

    def next(self):
        return next(self._events, None)


class ArraysSource(_GeneratorSource):
    """
    Replays the rows of a set of top level arrays as a sequence of records,
    one struct per row with a key event before each field value.

    When the arrays differ in length only the rows present in every array
    are replayed.
    """

    def __init__(self, views: Sequence[BufferView]):
        self.views = list(views)
        self.num_rows = _num_rows(self.views)
        super().__init__()

    def _generate(self):
        for index in range(self.num_rows):
            yield ev.START_STRUCT
            for view in self.views:
                yield ev.string(view.field.name)
                yield from _emit(view, index)
            yield ev.END_STRUCT


class ArraySource(_GeneratorSource):
    """Replays the elements of a single array, one value per row."""

    def __init__(self, view: BufferView):
        self.view = view
        self.num_rows = view.length
        super().__init__()

    def _generate(self):
        for index in range(self.num_rows):
            yield from _emit(self.view, index)
