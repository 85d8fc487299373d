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

import logging
import os
from typing import Sequence

from pycolumnar import _arrow
from pycolumnar.coercion import (
    coerce_int,
    coerce_scalar,
    parse_naive_timestamp,
    parse_utc_timestamp,
    zero_value,
)
from pycolumnar.compiler import ArrayKind, Op, Program, compile_serialization
from pycolumnar.error import (
    ColumnarTypeMismatchError,
    ProtocolError,
    fail_event,
)
from pycolumnar.event import MATCHING_END, SCALAR_KINDS, EventKind, EventSink
from pycolumnar.schema import Field

logger = logging.getLogger(__name__)


class Interpreter(EventSink):
    """
    Executes a compiled `Program` over the events of a sequence of records.

    Produces the same arrays and raises the same error kinds as the builder
    tree for the same fields and events. Buffers live in per slot lists,
    ``self.pc`` is the instruction waiting for the next event.
    """

    def __init__(self, fields: Sequence[Field], program: Program = None):
        self.fields = list(fields)
        self.program = program if program is not None else compile_serialization(self.fields)
        if os.environ.get("ENABLE_PYCOLUMNAR_DEBUG_OUTPUT", "").lower() in ("1", "true"):
            logger.info("Compiled program:\n%s", self.program)
        self.instructions = self.program.instructions
        self.arrays = self.program.arrays
        self._zeros = [zero_value(array.field.data_type) for array in self.arrays]
        self._handlers = {
            Op.PUSH_NULL_TYPE: self._push_null_type,
            Op.PUSH_PRIMITIVE: self._push_primitive,
            Op.PUSH_DICTIONARY: self._push_dictionary,
            Op.PUSH_DATE_NAIVE_STR: self._push_date_naive_str,
            Op.PUSH_DATE_UTC_STR: self._push_date_utc_str,
            Op.STRUCT_START: self._struct_start,
            Op.STRUCT_KEY: self._struct_key,
            Op.TUPLE_START: self._tuple_start,
            Op.TUPLE_END: self._tuple_end,
            Op.LIST_START: self._list_start,
            Op.LIST_ITEM: self._list_item,
            Op.MAP_START: self._map_start,
            Op.MAP_ITEM: self._map_item,
            Op.UNION_START: self._union_start,
        }
        self.reset()

    def reset(self):
        num_slots = self.program.num_slots
        self.pc = 0
        self.stack = []
        self.validity = [[] for _ in range(num_slots)]
        self.values = [[] for _ in range(num_slots)]
        self.offsets = [[] if array.kind == ArrayKind.UNION else [0] for array in self.arrays]
        self.lengths = [0] * num_slots
        self.counts = [[0] * len(array.children) for array in self.arrays]
        self.dictionaries = [{} for _ in range(num_slots)]

    def accept(self, event):
        # handlers return False when the event must be dispatched again at the new pc
        while True:
            instruction = self.instructions[self.pc]
            if self._handlers[instruction.op](instruction, event):
                return

    def finish(self):
        if self.pc != 0 or self.stack:
            raise ProtocolError(f"Incomplete record in finish, pc={self.pc} [{self}]")

    def build_arrays(self):
        self.finish()
        root = self.arrays[self.program.root]
        arrays = [self._build(child) for child in root.children]
        logger.debug("Built %d arrays with %d rows", len(arrays), len(self.validity[self.program.root]))
        self.reset()
        return arrays

    def __str__(self):
        return f"Interpreter(pc={self.pc})"

    def _build(self, slot):
        array = self.arrays[slot]
        field, kind = array.field, array.kind
        if kind == ArrayKind.NULL:
            return _arrow.primitive_array(field, [False] * self.lengths[slot], None)
        if kind == ArrayKind.PRIMITIVE:
            return _arrow.primitive_array(field, self.validity[slot], self.values[slot])
        if kind == ArrayKind.DICTIONARY:
            return _arrow.dictionary_array(field, self.validity[slot], self.values[slot], list(self.dictionaries[slot]))
        children = [self._build(child) for child in array.children]
        if kind == ArrayKind.LIST:
            return _arrow.list_array(field, self.validity[slot], self.offsets[slot], children[0])
        if kind == ArrayKind.STRUCT:
            return _arrow.struct_array(field, self.validity[slot], children)
        if kind == ArrayKind.MAP:
            return _arrow.map_array(field, self.validity[slot], self.offsets[slot], children[0], children[1])
        return _arrow.union_array(field, self.values[slot], self.offsets[slot], children)

    def _intern(self, slot, value):
        dictionary = self.dictionaries[slot]
        key = dictionary.get(value)
        if key is None:
            field = self.arrays[slot].field
            key = coerce_int(len(dictionary), field.children[0].data_type, field.name)
            dictionary[value] = key
        return key

    def _push_default(self, slot):
        array = self.arrays[slot]
        kind = array.kind
        if kind == ArrayKind.NULL:
            self.lengths[slot] += 1
            return
        if kind == ArrayKind.UNION:
            self._select_variant(slot, 0)
            self._push_default(array.children[0])
            return
        if kind == ArrayKind.PRIMITIVE:
            self.values[slot].append(self._zeros[slot])
        elif kind == ArrayKind.DICTIONARY:
            self.values[slot].append(self._intern(slot, ""))
        elif kind == ArrayKind.STRUCT:
            for child in array.children:
                self._push_default(child)
        else:
            self.offsets[slot].append(self.lengths[slot])
        self.validity[slot].append(True)

    def _push_null(self, slot):
        array = self.arrays[slot]
        kind = array.kind
        if kind == ArrayKind.NULL:
            self.lengths[slot] += 1
            return
        if kind == ArrayKind.UNION:
            raise ColumnarTypeMismatchError(f"Union field {array.field.name!r} cannot hold null values")
        if array.records:
            # a null record is a row of nulls
            for child in array.children:
                self._push_null(child)
            self.validity[slot].append(False)
            return
        if not array.field.nullable:
            raise ColumnarTypeMismatchError(f"Null value for non-nullable field {array.field.name!r}")
        if kind == ArrayKind.PRIMITIVE:
            self.values[slot].append(self._zeros[slot])
        elif kind == ArrayKind.DICTIONARY:
            self.values[slot].append(0)
        elif kind == ArrayKind.STRUCT:
            for child in array.children:
                self._push_default(child)
        else:
            self.offsets[slot].append(self.lengths[slot])
        self.validity[slot].append(False)

    def _select_variant(self, slot, index):
        counts = self.counts[slot]
        if index is None or not 0 <= index < len(counts):
            raise ProtocolError(f"Invalid variant index {index} for union {self.arrays[slot].field.name!r} with {len(counts)} variants")
        self.values[slot].append(index)
        self.offsets[slot].append(counts[index])
        counts[index] += 1

    def _null_or_default(self, instruction, event):
        if event.kind == EventKind.NULL:
            self._push_null(instruction.slot)
        elif event.kind == EventKind.DEFAULT:
            self._push_default(instruction.slot)
        else:
            fail_event(self, event, _state(instruction))
        self.pc = instruction.next
        return True

    def _push_null_type(self, instruction, event):
        if event.kind != EventKind.NULL and event.kind != EventKind.DEFAULT:
            fail_event(self, event, _state(instruction))
        self.lengths[instruction.slot] += 1
        self.pc = instruction.next
        return True

    def _push_primitive(self, instruction, event):
        if event.kind not in SCALAR_KINDS:
            return self._null_or_default(instruction, event)
        slot = instruction.slot
        field = self.arrays[slot].field
        self.values[slot].append(coerce_scalar(event.kind, event.value, field.data_type, field.name))
        self.validity[slot].append(True)
        self.pc = instruction.next
        return True

    def _push_date_naive_str(self, instruction, event):
        if event.kind == EventKind.STR:
            return self._push_millis(instruction, parse_naive_timestamp(event.value))
        return self._push_primitive(instruction, event)

    def _push_date_utc_str(self, instruction, event):
        if event.kind == EventKind.STR:
            return self._push_millis(instruction, parse_utc_timestamp(event.value))
        return self._push_primitive(instruction, event)

    def _push_millis(self, instruction, millis):
        self.values[instruction.slot].append(millis)
        self.validity[instruction.slot].append(True)
        self.pc = instruction.next
        return True

    def _push_dictionary(self, instruction, event):
        kind = event.kind
        if kind == EventKind.STR:
            slot = instruction.slot
            self.values[slot].append(self._intern(slot, event.value))
            self.validity[slot].append(True)
            self.pc = instruction.next
            return True
        if kind in SCALAR_KINDS:
            raise ColumnarTypeMismatchError(f"Cannot store {event} in dictionary field {self.arrays[instruction.slot].field.name!r}")
        return self._null_or_default(instruction, event)

    def _struct_start(self, instruction, event):
        kind = event.kind
        if kind != EventKind.START_STRUCT and kind != EventKind.START_MAP:
            return self._null_or_default(instruction, event)
        seen = [False] * len(self.arrays[instruction.slot].children)
        self.stack.append((MATCHING_END[kind], seen))
        self.pc = instruction.target
        return True

    def _struct_key(self, instruction, event):
        end, seen = self.stack[-1]
        kind = event.kind
        array = self.arrays[instruction.slot]
        if kind == EventKind.STR:
            entry = instruction.aux.get(event.value)
            if entry is None:
                raise ProtocolError(f"Unknown field {event.value!r} for struct {array.field.name!r}")
            position, child_pc = entry
            if seen[position]:
                raise ProtocolError(f"Duplicate field {event.value!r} for struct {array.field.name!r}")
            seen[position] = True
            self.pc = child_pc
            return True
        if kind != end:
            fail_event(self, event, _state(instruction))
        missing = [child for child, was_seen in zip(array.children, seen) if not was_seen]
        for child in missing:
            child_field = self.arrays[child].field
            if not child_field.nullable:
                raise ProtocolError(f"Missing non-nullable field {child_field.name!r} for struct {array.field.name!r}")
        for child in missing:
            self._push_null(child)
        self.stack.pop()
        self.validity[instruction.slot].append(True)
        self.pc = instruction.next
        return True

    def _tuple_start(self, instruction, event):
        if event.kind != EventKind.START_TUPLE:
            return self._null_or_default(instruction, event)
        self.pc = instruction.target
        return True

    def _tuple_end(self, instruction, event):
        if event.kind != EventKind.END_TUPLE:
            field = self.arrays[instruction.slot].field
            raise ProtocolError(f"Too many items for tuple {field.name!r} with {len(field.children)} items, got {event}")
        self.validity[instruction.slot].append(True)
        self.pc = instruction.next
        return True

    def _list_start(self, instruction, event):
        if event.kind != EventKind.START_LIST:
            return self._null_or_default(instruction, event)
        self.pc = instruction.target
        return True

    def _list_item(self, instruction, event):
        slot = instruction.slot
        if event.kind == EventKind.END_LIST:
            self.offsets[slot].append(self.lengths[slot])
            self.validity[slot].append(True)
            self.pc = instruction.next
            return True
        self.lengths[slot] += 1
        self.pc = instruction.target
        return False

    def _map_start(self, instruction, event):
        if event.kind != EventKind.START_MAP:
            return self._null_or_default(instruction, event)
        self.pc = instruction.target
        return True

    def _map_item(self, instruction, event):
        slot = instruction.slot
        if event.kind == EventKind.END_MAP:
            self.offsets[slot].append(self.lengths[slot])
            self.validity[slot].append(True)
            self.pc = instruction.next
            return True
        self.lengths[slot] += 1
        self.pc = instruction.target
        return False

    def _union_start(self, instruction, event):
        if event.kind != EventKind.VARIANT:
            return self._null_or_default(instruction, event)
        self._select_variant(instruction.slot, event.index)
        self.pc = instruction.aux[event.index]
        return True


def _state(instruction):
    return repr(instruction)
