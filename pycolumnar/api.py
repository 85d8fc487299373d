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

import os
from typing import Iterable, List, Optional

import pyarrow as pa

from pycolumnar import event as ev
from pycolumnar.builders import build_array_builder, build_records_builder
from pycolumnar.error import SchemaError
from pycolumnar.event import AddOuterSequenceSource, EventSink, StripOuterSequenceSink
from pycolumnar.extraction import extract_buffers
from pycolumnar.interpreter import Interpreter
from pycolumnar.schema import Field, as_field, as_fields
from pycolumnar.serde import deserialize_from_source, serialize_into_sink
from pycolumnar.sources import ArraySource, ArraysSource
from pycolumnar.tracing import FieldTracer, RecordsTracer, TracingOptions

_ENABLE_PYCOLUMNAR_BYTECODE = os.environ.get("ENABLE_PYCOLUMNAR_BYTECODE", "True").lower() in (
    "true",
    "1",
)


def _use_bytecode(use_bytecode: Optional[bool]) -> bool:
    return _ENABLE_PYCOLUMNAR_BYTECODE if use_bytecode is None else use_bytecode


def _serialize_sequence(sink: EventSink, items: Iterable):
    sink.accept(ev.START_LIST)
    for item in items:
        serialize_into_sink(sink, item)
    sink.accept(ev.END_LIST)
    sink.finish()


def trace_schema(samples: Iterable, options: TracingOptions = None) -> List[Field]:
    """
    Determine the top level fields of a sequence of records.

    Records are dicts, dataclass instances or namedtuples. Raises
    `SchemaInferenceError` when no schema can be determined.
    """
    tracer = RecordsTracer(options or TracingOptions())
    _serialize_sequence(StripOuterSequenceSink(tracer), samples)
    return tracer.to_fields()


def trace_field(items: Iterable, name: str = "item", options: TracingOptions = None) -> Field:
    """Determine the field of a sequence of single values."""
    tracer = FieldTracer(name, options or TracingOptions())
    _serialize_sequence(StripOuterSequenceSink(tracer), items)
    return tracer.to_field()


class ArraysBuilder:
    """
    Incrementally convert records into one array per top level field.

    >>> builder = ArraysBuilder(fields)
    >>> builder.push({"a": 1})
    >>> builder.extend([{"a": 2}, {"a": 3}])
    >>> arrays = builder.build_arrays()

    After an error the builder content is undefined, call `reset` before
    reusing it.
    """

    def __init__(self, fields, use_bytecode: bool = None):
        self.fields = as_fields(fields)
        if _use_bytecode(use_bytecode):
            self._sink = Interpreter(self.fields)
        else:
            self._sink = build_records_builder(self.fields)

    def push(self, item):
        serialize_into_sink(self._sink, item)

    def extend(self, items: Iterable):
        _serialize_sequence(StripOuterSequenceSink(self._sink), items)

    def build_arrays(self) -> List[pa.Array]:
        """Return the arrays of all records pushed so far and start a new batch."""
        return self._sink.build_arrays()

    def reset(self):
        self._sink.reset()


class ArrayBuilder:
    """Incrementally convert single values into one array."""

    def __init__(self, field, use_bytecode: bool = None):
        self.field = as_field(field)
        self._bytecode = _use_bytecode(use_bytecode)
        if self._bytecode:
            self._sink = Interpreter([self.field])
        else:
            self._sink = build_array_builder(self.field)

    def push(self, item):
        if self._bytecode:
            # the interpreter consumes records, wrap the item into one
            self._sink.accept(ev.START_STRUCT)
            self._sink.accept(ev.string(self.field.name))
            serialize_into_sink(self._sink, item)
            self._sink.accept(ev.END_STRUCT)
        else:
            serialize_into_sink(self._sink, item)

    def extend(self, items: Iterable):
        for item in items:
            self.push(item)

    def build_array(self) -> pa.Array:
        if self._bytecode:
            return self._sink.build_arrays()[0]
        return self._sink.build_array()

    def reset(self):
        self._sink.reset()


def to_arrays(fields, items: Iterable, use_bytecode: bool = None) -> List[pa.Array]:
    """Convert a sequence of records into one array per field."""
    builder = ArraysBuilder(fields, use_bytecode=use_bytecode)
    builder.extend(items)
    return builder.build_arrays()


def to_array(field, items: Iterable, use_bytecode: bool = None) -> pa.Array:
    """Convert a sequence of values into a single array."""
    builder = ArrayBuilder(field, use_bytecode=use_bytecode)
    builder.extend(items)
    return builder.build_array()


def _columns(arrays):
    if isinstance(arrays, (pa.RecordBatch, pa.Table)):
        return list(arrays.columns)
    return list(arrays)


def from_arrays(fields, arrays) -> List[dict]:
    """
    Convert arrays back into a list of records, one dict per row.

    `arrays` is a list of arrays (or chunked arrays) in field order, a
    `pyarrow.RecordBatch` or a `pyarrow.Table`.
    """
    fields = as_fields(fields)
    columns = _columns(arrays)
    if len(columns) != len(fields):
        raise SchemaError(f"Got {len(columns)} arrays for {len(fields)} fields")
    views = [extract_buffers(column, field)[field.name] for column, field in zip(columns, fields)]
    return deserialize_from_source(AddOuterSequenceSource(ArraysSource(views)))


def from_array(field, array) -> list:
    """Convert a single array back into a list of values."""
    field = as_field(field)
    view = extract_buffers(array, field)[field.name]
    return deserialize_from_source(AddOuterSequenceSource(ArraySource(view)))
