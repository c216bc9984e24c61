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

import pytest

import pgarray.core.exception as m

CONFIG_ERRORS = (
    m.InvalidBlockSpec,
    m.UnknownPlacementPolicy,
    m.PlacementRankMismatch,
    m.IncompatiblePartitioning,
)


class TestHierarchy:
    @pytest.mark.parametrize("kind", CONFIG_ERRORS)
    def test_config_errors(self, kind: type[Exception]) -> None:
        assert issubclass(kind, m.PGArrayError)
        assert issubclass(kind, ValueError)

    @pytest.mark.parametrize("kind", (m.BlockTaskFailure, m.FetchFailure))
    def test_runtime_errors(self, kind: type[Exception]) -> None:
        assert issubclass(kind, m.PGArrayError)
        assert not issubclass(kind, ValueError)


class TestBlockTaskFailure:
    def test_message(self) -> None:
        failure = m.BlockTaskFailure((1, 2), KeyError("k"))
        assert failure.index == (1, 2)
        assert str(failure) == (
            "Block task failed for block (1, 2): KeyError: 'k'"
        )

    def test_traceback(self) -> None:
        failure = m.BlockTaskFailure(None, RuntimeError("x"), "  line\n")
        assert str(failure) == (
            "Block task failed: RuntimeError: x\nSubmitted from:\n  line"
        )

    def test_at(self) -> None:
        cause = KeyError("k")
        failure = m.BlockTaskFailure((0,), cause, "tb")
        assert failure.at((0,)) is failure
        moved = failure.at((3,))
        assert moved.index == (3,)
        assert moved.cause is cause
        assert moved.tb_repr == "tb"

    def test_raise_exception(self) -> None:
        cause = KeyError("k")
        failure = m.BlockTaskFailure((0,), cause)
        with pytest.raises(m.BlockTaskFailure) as excinfo:
            failure.raise_exception()
        assert excinfo.value.__cause__ is cause


class TestFetchFailure:
    def test_message(self) -> None:
        failure = m.FetchFailure("chunk-1", "gone")
        assert failure.chunk == "chunk-1"
        assert failure.reason == "gone"
        assert str(failure) == "Could not fetch chunk-1: gone"
