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


class Variant:
    """
    A value of a tagged union: the variant name, its position in the
    declaration order of the union and the payload (None for unit variants).
    """

    __slots__ = ("name", "index", "value")

    def __init__(self, name: str, index: int, value: object = None) -> None:
        self.name = name
        self.index = index
        self.value = value

    def __eq__(self, other):
        if not isinstance(other, Variant):
            return NotImplemented
        return self.name == other.name and self.index == other.index and self.value == other.value

    def __hash__(self):
        return hash((self.name, self.index))

    def __repr__(self):
        return f"Variant({self.name!r}, {self.index}, {self.value!r})"
