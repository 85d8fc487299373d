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

from pycolumnar.error import (  # noqa: F401 # pylint: disable=unused-import
    ColumnarError,
    SchemaInferenceError,
    SchemaError,
    ProtocolError,
    UnsupportedTypeError,
    ColumnarTypeMismatchError,
    ColumnarEncodingError,
)
from pycolumnar.event import (  # noqa: F401 # pylint: disable=unused-import
    EventKind,
    Event,
    EventSink,
    EventSource,
    StripOuterSequenceSink,
    AddOuterSequenceSource,
)
from pycolumnar.types import DataType, Strategy, STRATEGY_KEY  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.schema import (  # noqa: F401 # pylint: disable=unused-import
    Field,
    to_arrow_schema,
    from_arrow_schema,
)
from pycolumnar.union import Variant  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.serde import (  # noqa: F401 # pylint: disable=unused-import
    serialize_into_sink,
    deserialize_from_source,
    iter_events,
)
from pycolumnar.tracing import Tracer, TracingOptions  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.compiler import Program, compile_serialization  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.interpreter import Interpreter  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.extraction import BufferView, extract_buffers  # noqa: F401 # pylint: disable=unused-import
from pycolumnar.api import (  # noqa: F401 # pylint: disable=unused-import
    trace_schema,
    trace_field,
    to_arrays,
    to_array,
    from_arrays,
    from_array,
    ArraysBuilder,
    ArrayBuilder,
)

__version__ = "0.1.0.dev"

__all__ = [
    # Conversion
    "trace_schema",
    "trace_field",
    "to_arrays",
    "to_array",
    "from_arrays",
    "from_array",
    "ArraysBuilder",
    "ArrayBuilder",
    # Schema
    "Field",
    "DataType",
    "Strategy",
    "STRATEGY_KEY",
    "TracingOptions",
    "to_arrow_schema",
    "from_arrow_schema",
    # Events
    "EventKind",
    "Event",
    "EventSink",
    "EventSource",
    "StripOuterSequenceSink",
    "AddOuterSequenceSource",
    "serialize_into_sink",
    "deserialize_from_source",
    "iter_events",
    "Variant",
    # Engine
    "Tracer",
    "Program",
    "compile_serialization",
    "Interpreter",
    "BufferView",
    "extract_buffers",
    # Errors
    "ColumnarError",
    "SchemaInferenceError",
    "SchemaError",
    "ProtocolError",
    "UnsupportedTypeError",
    "ColumnarTypeMismatchError",
    "ColumnarEncodingError",
    "__version__",
]
