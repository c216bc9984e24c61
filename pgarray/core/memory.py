# Copyright 2023 NVIDIA Corporation
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from .debug import dagdebug
from .exception import FetchFailure
from .machine import ANY_SCOPE, Processor, Scope


@dataclass(frozen=True)
class ChunkRef:
    """
    Locates the materialized data of one block. The data itself lives in a
    ``MemoryStore``, which reference-counts it.
    """

    id: int
    owner: Optional[Processor]
    scope: Scope = field(default=ANY_SCOPE)

    def __repr__(self) -> str:
        return f"ChunkRef({self.id} @ {self.owner!r})"


class MemoryStore(ABC):
    @abstractmethod
    def put(
        self,
        owner: Optional[Processor],
        value: Any,
        scope: Optional[Scope] = None,
    ) -> ChunkRef:
        """Stores ``value`` with one reference held by the caller"""
        ...

    @abstractmethod
    def fetch_local(self, ref: ChunkRef) -> Any:
        ...

    @abstractmethod
    def retain(self, ref: ChunkRef) -> None:
        ...

    @abstractmethod
    def release(self, ref: ChunkRef) -> None:
        ...


class LocalMemoryStore(MemoryStore):
    """
    In-process store. Arrays are kept as read-only views so that blocks
    shared between directories cannot be mutated in place.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[int, Any] = {}
        self._counts: dict[int, int] = {}
        self._ids = itertools.count(1)
        self._unreachable: set[int] = set()

    def put(
        self,
        owner: Optional[Processor],
        value: Any,
        scope: Optional[Scope] = None,
    ) -> ChunkRef:
        if isinstance(value, np.ndarray) and value.flags.writeable:
            value = value.view()
            value.flags.writeable = False
        if scope is None:
            scope = ANY_SCOPE if owner is None else Scope.of(owner)
        with self._lock:
            ref = ChunkRef(next(self._ids), owner, scope)
            self._values[ref.id] = value
            self._counts[ref.id] = 1
        return ref

    def fetch_local(self, ref: ChunkRef) -> Any:
        with self._lock:
            if ref.owner is not None and ref.owner.worker in self._unreachable:
                raise FetchFailure(
                    ref, f"worker {ref.owner.worker} is unreachable"
                )
            if ref.id not in self._values:
                raise FetchFailure(ref, "chunk was already released")
            return self._values[ref.id]

    def retain(self, ref: ChunkRef) -> None:
        with self._lock:
            if ref.id not in self._counts:
                raise FetchFailure(ref, "cannot retain a released chunk")
            self._counts[ref.id] += 1

    def release(self, ref: ChunkRef) -> None:
        with self._lock:
            count = self._counts.get(ref.id)
            if count is None:
                return
            if count > 1:
                self._counts[ref.id] = count - 1
                return
            del self._counts[ref.id]
            del self._values[ref.id]
        dagdebug("release", f"freed {ref!r}")

    def refcount(self, ref: ChunkRef) -> int:
        with self._lock:
            return self._counts.get(ref.id, 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def mark_unreachable(self, worker: int) -> None:
        with self._lock:
            self._unreachable.add(worker)

    def mark_reachable(self, worker: int) -> None:
        with self._lock:
            self._unreachable.discard(worker)
