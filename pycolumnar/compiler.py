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
Lowering of a field tree into a flat program for the bytecode interpreter.

Every array of the output owns one slot. Instructions reference slots and
carry precomputed jump targets: ``next`` is the instruction following the
complete value, ``target`` the entry of the child program(s). Struct keys
and union variants map to the entry of the matching child program.
"""

import logging
from typing import Dict, List, Sequence

from pycolumnar.error import UnsupportedTypeError
from pycolumnar.schema import Field
from pycolumnar.types import DataType, LIST_TYPES, Strategy, is_primitive, type_name

logger = logging.getLogger(__name__)


class Op:
    """Opcodes of the interpreter."""

    PUSH_NULL_TYPE = 0
    PUSH_PRIMITIVE = 1
    PUSH_DICTIONARY = 2
    # Str events are parsed as naive timestamps before the push.
    PUSH_DATE_NAIVE_STR = 3
    # Str events are parsed as UTC timestamps before the push.
    PUSH_DATE_UTC_STR = 4
    STRUCT_START = 5
    # target of every child program of a struct, consumes keys and the end event.
    STRUCT_KEY = 6
    TUPLE_START = 7
    TUPLE_END = 8
    LIST_START = 9
    # target of the item program, consumes the end event or enters the next item.
    LIST_ITEM = 10
    MAP_START = 11
    MAP_ITEM = 12
    UNION_START = 13


_OP_NAMES = {v: k for k, v in vars(Op).items() if not k.startswith("_")}


class ArrayKind:
    NULL = 0
    PRIMITIVE = 1
    DICTIONARY = 2
    LIST = 3
    STRUCT = 4
    UNION = 5
    MAP = 6


class ArrayDef:
    """Description of the array assembled from one slot."""

    __slots__ = ("field", "kind", "children", "records")

    def __init__(self, field: Field, kind: int, records: bool = False):
        self.field = field
        self.kind = kind
        self.children: List[int] = []
        self.records = records


class Instruction:
    __slots__ = ("op", "slot", "next", "target", "aux")

    def __init__(self, op: int, slot: int, target=None, aux=None):
        self.op = op
        self.slot = slot
        self.next = None
        self.target = target
        self.aux = aux

    def __repr__(self):
        parts = [_OP_NAMES[self.op], f"slot={self.slot}", f"next={self.next}"]
        if self.target is not None:
            parts.append(f"target={self.target}")
        if self.aux is not None:
            parts.append(f"aux={self.aux}")
        return " ".join(parts)


class Program:
    """A compiled conversion program, the root records struct starts at pc 0."""

    def __init__(self, instructions: List[Instruction], arrays: List[ArrayDef], root: int):
        self.instructions = instructions
        self.arrays = arrays
        self.root = root

    @property
    def num_slots(self) -> int:
        return len(self.arrays)

    def __str__(self):
        lines = [f"Program({len(self.instructions)} instructions, {self.num_slots} slots)"]
        for pc, instruction in enumerate(self.instructions):
            lines.append(f"  {pc:4d}: {instruction!r}  # {self.arrays[instruction.slot].field.name}")
        return "\n".join(lines)


class _Compiler:
    def __init__(self):
        self.instructions: List[Instruction] = []
        self.arrays: List[ArrayDef] = []

    def emit(self, op, slot, target=None, aux=None) -> int:
        self.instructions.append(Instruction(op, slot, target, aux))
        return len(self.instructions) - 1

    def allocate(self, field, kind, records=False) -> int:
        self.arrays.append(ArrayDef(field, kind, records))
        return len(self.arrays) - 1

    def patch(self, exits, pc):
        for exit_pc in exits:
            self.instructions[exit_pc].next = pc

    def compile_value(self, field: Field):
        """
        Emit the program of one value of `field`, returning the slot, the
        entry pc and the pcs whose `next` continues after the value.
        """
        data_type = field.data_type
        if data_type == DataType.NULL:
            slot = self.allocate(field, ArrayKind.NULL)
            pc = self.emit(Op.PUSH_NULL_TYPE, slot)
            return slot, pc, [pc]
        if is_primitive(data_type):
            slot = self.allocate(field, ArrayKind.PRIMITIVE)
            op = _DATE_OPS.get(field.strategy, Op.PUSH_PRIMITIVE)
            pc = self.emit(op, slot)
            return slot, pc, [pc]
        if data_type == DataType.DICTIONARY:
            slot = self.allocate(field, ArrayKind.DICTIONARY)
            pc = self.emit(Op.PUSH_DICTIONARY, slot)
            return slot, pc, [pc]
        if data_type in LIST_TYPES:
            return self.compile_list(field)
        if data_type == DataType.STRUCT:
            if field.strategy == Strategy.TUPLE_AS_STRUCT:
                return self.compile_tuple(field)
            return self.compile_struct(field)
        if data_type == DataType.MAP:
            return self.compile_map(field)
        if data_type == DataType.UNION:
            return self.compile_union(field)
        raise UnsupportedTypeError(f"Cannot compile field {field.name!r} of type {type_name(data_type)}")

    def compile_list(self, field):
        slot = self.allocate(field, ArrayKind.LIST)
        start = self.emit(Op.LIST_START, slot)
        loop = self.emit(Op.LIST_ITEM, slot)
        self.instructions[start].target = loop
        item_slot, item_pc, item_exits = self.compile_value(field.children[0])
        self.arrays[slot].children.append(item_slot)
        self.instructions[loop].target = item_pc
        self.patch(item_exits, loop)
        return slot, start, [start, loop]

    def compile_struct(self, field, records=False):
        slot = self.allocate(field, ArrayKind.STRUCT, records)
        start = self.emit(Op.STRUCT_START, slot)
        key = self.emit(Op.STRUCT_KEY, slot, aux={})
        self.instructions[start].target = key
        entries: Dict[str, tuple] = self.instructions[key].aux
        for position, child in enumerate(field.children):
            child_slot, child_pc, child_exits = self.compile_value(child)
            self.arrays[slot].children.append(child_slot)
            entries[child.name] = (position, child_pc)
            self.patch(child_exits, key)
        return slot, start, [start, key]

    def compile_tuple(self, field):
        slot = self.allocate(field, ArrayKind.STRUCT)
        start = self.emit(Op.TUPLE_START, slot)
        first, pending = None, []
        for child in field.children:
            child_slot, child_pc, child_exits = self.compile_value(child)
            self.arrays[slot].children.append(child_slot)
            if first is None:
                first = child_pc
            self.patch(pending, child_pc)
            pending = child_exits
        end = self.emit(Op.TUPLE_END, slot)
        self.patch(pending, end)
        self.instructions[start].target = end if first is None else first
        return slot, start, [start, end]

    def compile_map(self, field):
        slot = self.allocate(field, ArrayKind.MAP)
        start = self.emit(Op.MAP_START, slot)
        loop = self.emit(Op.MAP_ITEM, slot)
        self.instructions[start].target = loop
        key, value = field.children
        key_slot, key_pc, key_exits = self.compile_value(key)
        value_slot, value_pc, value_exits = self.compile_value(value)
        self.arrays[slot].children.extend([key_slot, value_slot])
        self.instructions[loop].target = key_pc
        self.patch(key_exits, value_pc)
        self.patch(value_exits, loop)
        return slot, start, [start, loop]

    def compile_union(self, field):
        slot = self.allocate(field, ArrayKind.UNION)
        start = self.emit(Op.UNION_START, slot, aux=[])
        exits = [start]
        for child in field.children:
            child_slot, child_pc, child_exits = self.compile_value(child)
            self.arrays[slot].children.append(child_slot)
            self.instructions[start].aux.append(child_pc)
            exits.extend(child_exits)
        return slot, start, exits


_DATE_OPS = {
    Strategy.NAIVE_STR_AS_DATE64: Op.PUSH_DATE_NAIVE_STR,
    Strategy.UTC_STR_AS_DATE64: Op.PUSH_DATE_UTC_STR,
}


def compile_serialization(fields: Sequence[Field]) -> Program:
    """
    Compile the program converting a sequence of records with the given
    top level fields. After every record the program returns to pc 0.
    """
    compiler = _Compiler()
    root = Field("root", DataType.STRUCT, False, fields)
    slot, start, exits = compiler.compile_struct(root, records=True)
    compiler.patch(exits, start)
    program = Program(compiler.instructions, compiler.arrays, slot)
    logger.debug("Compiled program with %d instructions and %d slots", len(program.instructions), program.num_slots)
    return program
