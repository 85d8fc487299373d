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
Wrap logical buffers into pyarrow arrays.

The builders and the interpreter accumulate plain Python lists: a validity
list (True = valid), a value list holding a placeholder at null positions,
offset lists with N+1 entries and, for unions, type ids and value offsets.
The functions below hand these buffers to `pa.Array.from_buffers`, so the
resulting arrays carry exactly the accumulated validity bitmap and value
and offset buffers.
"""

import numpy as np
import pyarrow as pa

from pycolumnar.schema import Field
from pycolumnar.types import DataType

_STORAGE_TYPES = {
    DataType.DATE64: pa.int64(),
}


def validity_bitmap(validity):
    """Pack a validity list into a bitmap buffer, None when every element is valid."""
    null_count = len(validity) - sum(validity)
    if null_count == 0:
        return None, 0
    return pa.array(validity, type=pa.bool_()).buffers()[1], null_count


def offsets_buffer(offsets, large=False):
    return pa.array(offsets, type=pa.int64() if large else pa.int32()).buffers()[1]


def primitive_array(field: Field, validity, values):
    arrow_type = field.to_arrow_type()
    if field.data_type == DataType.NULL:
        return pa.nulls(len(validity))
    if field.data_type == DataType.FLOAT16:
        storage = pa.array(np.array(values, dtype=np.float16), type=arrow_type)
    else:
        storage = pa.array(values, type=_STORAGE_TYPES.get(field.data_type, arrow_type))
    bitmap, null_count = validity_bitmap(validity)
    return pa.Array.from_buffers(
        arrow_type,
        len(values),
        [bitmap] + storage.buffers()[1:],
        null_count=null_count,
    )


def list_array(field: Field, validity, offsets, item_array):
    bitmap, null_count = validity_bitmap(validity)
    return pa.Array.from_buffers(
        field.to_arrow_type(),
        len(validity),
        [bitmap, offsets_buffer(offsets, large=field.data_type == DataType.LARGE_LIST)],
        null_count=null_count,
        children=[item_array],
    )


def struct_array(field: Field, validity, child_arrays):
    bitmap, null_count = validity_bitmap(validity)
    return pa.Array.from_buffers(
        field.to_arrow_type(),
        len(validity),
        [bitmap],
        null_count=null_count,
        children=list(child_arrays),
    )


def map_array(field: Field, validity, offsets, key_array, value_array):
    map_type = field.to_arrow_type()
    entries = pa.Array.from_buffers(
        pa.struct([map_type.key_field, map_type.item_field]),
        len(key_array),
        [None],
        children=[key_array, value_array],
    )
    bitmap, null_count = validity_bitmap(validity)
    return pa.Array.from_buffers(
        map_type,
        len(validity),
        [bitmap, offsets_buffer(offsets)],
        null_count=null_count,
        children=[entries],
    )


def union_array(field: Field, type_ids, offsets, child_arrays):
    # dense unions carry no validity bitmap
    return pa.Array.from_buffers(
        field.to_arrow_type(),
        len(type_ids),
        [
            None,
            pa.array(type_ids, type=pa.int8()).buffers()[1],
            pa.array(offsets, type=pa.int32()).buffers()[1],
        ],
        children=list(child_arrays),
    )


def dictionary_array(field: Field, validity, keys, dictionary_values):
    key_field, value_field = field.children
    indices = primitive_array(key_field, validity, keys)
    dictionary = pa.array(dictionary_values, type=value_field.to_arrow_type())
    return pa.DictionaryArray.from_arrays(indices, dictionary)
