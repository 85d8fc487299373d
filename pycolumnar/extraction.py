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
Logical views of the buffers of Arrow arrays.

`extract_buffers` walks an array together with its field and returns one
`BufferView` per field path. Views hold plain Python lists so that the
reverse interpreter does not depend on the array library.
"""

from typing import Dict, List, Optional

import pyarrow as pa

from pycolumnar.error import ColumnarTypeMismatchError, UnsupportedTypeError
from pycolumnar.schema import Field, arrow_type_id, as_field
from pycolumnar.types import DataType, FLOAT_TYPES, LIST_TYPES, is_primitive, type_name


class BufferView:
    """
    The logical buffers of one array.

    Attributes:
        path: dotted path of the field, starting with the root field name.
        length: number of elements.
        validity: one bool per element, None when every element is valid.
        values: element values of primitive arrays, keys of dictionary
            arrays, type ids of union arrays.
        offsets: length + 1 offsets of list and map arrays, value offsets of
            union arrays.
        dictionary: the values of dictionary arrays.
        children: views of the child arrays in field order.
    """

    __slots__ = ("path", "field", "length", "validity", "values", "offsets", "dictionary", "children")

    def __init__(self, path: str, field: Field, length: int):
        self.path = path
        self.field = field
        self.length = length
        self.validity: Optional[List[bool]] = None
        self.values: Optional[list] = None
        self.offsets: Optional[List[int]] = None
        self.dictionary: Optional[list] = None
        self.children: List[BufferView] = []

    def is_valid(self, index: int) -> bool:
        return self.validity is None or self.validity[index]

    def __repr__(self):
        return f"BufferView({self.path!r}, {type_name(self.field.data_type)}, length={self.length})"


def extract_buffers(array, field) -> Dict[str, BufferView]:
    """Return the views of `array` and all its child arrays keyed by field path."""
    field = as_field(field)
    if isinstance(array, pa.ChunkedArray):
        array = array.combine_chunks()
    views = {}
    _extract(array, field, field.name, views)
    return views


def _validity(array):
    if array.null_count == 0:
        return None
    return array.is_valid().to_pylist()


def _mismatch(field, path, array_type):
    return ColumnarTypeMismatchError(f"Field {path!r} of type {type_name(field.data_type)} cannot be read from an array of type {array_type}")


def _check_type(array, field, path):
    arrow_type = array.type
    data_type = field.data_type
    if arrow_type_id(arrow_type) != data_type:
        raise _mismatch(field, path, arrow_type)
    if data_type == DataType.DICTIONARY:
        key, value = field.children
        if arrow_type_id(arrow_type.index_type) != key.data_type or arrow_type_id(arrow_type.value_type) != value.data_type:
            raise _mismatch(field, path, arrow_type)
    elif data_type in (DataType.STRUCT, DataType.UNION):
        if arrow_type.num_fields != len(field.children):
            raise _mismatch(field, path, arrow_type)
        if data_type == DataType.UNION and arrow_type.mode != "dense":
            raise _mismatch(field, path, arrow_type)


def _union_buffer(array, index, buffer_type):
    # type ids and value offsets of a sliced union start at the slice offset
    buffer = array.buffers()[index]
    return pa.Array.from_buffers(buffer_type, len(array), [None, buffer], offset=array.offset).to_pylist()


def _extract(array, field, path, views):
    _check_type(array, field, path)
    data_type = field.data_type
    view = BufferView(path, field, len(array))
    views[path] = view
    if data_type == DataType.NULL:
        view.validity = [False] * len(array)
        return view
    if data_type == DataType.UNION:
        view.values = _union_buffer(array, 1, pa.int8())
        view.offsets = _union_buffer(array, 2, pa.int32())
        view.children = [_extract(array.field(i), child, f"{path}.{child.name}", views) for i, child in enumerate(field.children)]
        return view
    view.validity = _validity(array)
    if is_primitive(data_type):
        if data_type == DataType.DATE64:
            array = array.cast(pa.int64())
        values = array.to_pylist()
        if data_type in FLOAT_TYPES:
            values = [None if value is None else float(value) for value in values]
        view.values = values
    elif data_type == DataType.DICTIONARY:
        view.values = array.indices.to_pylist()
        view.dictionary = array.dictionary.to_pylist()
    elif data_type in LIST_TYPES:
        view.offsets = array.offsets.to_pylist()
        child = field.children[0]
        view.children = [_extract(array.values, child, f"{path}.{child.name}", views)]
    elif data_type == DataType.STRUCT:
        view.children = [_extract(array.field(i), child, f"{path}.{child.name}", views) for i, child in enumerate(field.children)]
    elif data_type == DataType.MAP:
        view.offsets = array.offsets.to_pylist()
        key, value = field.children
        view.children = [
            _extract(array.keys, key, f"{path}.{key.name}", views),
            _extract(array.items, value, f"{path}.{value.name}", views),
        ]
    else:
        raise UnsupportedTypeError(f"Cannot extract buffers of field {path!r} of type {type_name(data_type)}")
    return view
