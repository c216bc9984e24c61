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

import numpy as np
import pytest

from pgarray.core.exception import FetchFailure
from pgarray.core.machine import ANY_SCOPE, Processor, Scope
from pgarray.core.memory import ChunkRef, LocalMemoryStore


class TestChunkRef:
    def test_defaults(self) -> None:
        ref = ChunkRef(1, Processor(1))
        assert ref.scope == ANY_SCOPE
        assert repr(ref) == "ChunkRef(1 @ CPU(1:0))"


class TestLocalMemoryStore:
    def test_put_fetch(self) -> None:
        store = LocalMemoryStore()
        ref = store.put(Processor(1), 42)
        assert store.fetch_local(ref) == 42
        assert store.refcount(ref) == 1
        assert len(store) == 1

    def test_scope_from_owner(self) -> None:
        store = LocalMemoryStore()
        ref = store.put(Processor(2, 1), 1)
        assert ref.scope == Scope.of(Processor(2, 1))
        assert store.put(None, 1).scope == ANY_SCOPE
        assert store.put(Processor(1), 1, Scope(worker=1)).scope == Scope(
            worker=1
        )

    def test_arrays_read_only(self) -> None:
        store = LocalMemoryStore()
        data = np.ones(4)
        ref = store.put(Processor(1), data)
        stored = store.fetch_local(ref)
        with pytest.raises(ValueError):
            stored[0] = 2.0
        # the caller's array is untouched
        data[0] = 3.0
        assert data.flags.writeable

    def test_refcount(self) -> None:
        store = LocalMemoryStore()
        ref = store.put(Processor(1), "x")
        store.retain(ref)
        assert store.refcount(ref) == 2
        store.release(ref)
        assert store.fetch_local(ref) == "x"
        store.release(ref)
        assert store.refcount(ref) == 0
        assert len(store) == 0
        with pytest.raises(FetchFailure):
            store.fetch_local(ref)

    def test_release_unknown_is_noop(self) -> None:
        store = LocalMemoryStore()
        store.release(ChunkRef(99, None))

    def test_retain_released(self) -> None:
        store = LocalMemoryStore()
        ref = store.put(Processor(1), "x")
        store.release(ref)
        with pytest.raises(FetchFailure):
            store.retain(ref)

    def test_unreachable(self) -> None:
        store = LocalMemoryStore()
        ref = store.put(Processor(2), "x")
        store.mark_unreachable(2)
        with pytest.raises(FetchFailure) as excinfo:
            store.fetch_local(ref)
        assert excinfo.value.chunk == ref
        assert "unreachable" in excinfo.value.reason
        store.mark_reachable(2)
        assert store.fetch_local(ref) == "x"
