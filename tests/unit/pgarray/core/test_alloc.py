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

import pgarray.core.alloc as m
from pgarray.core.context import ClusterContext
from pgarray.core.placement import Placement


class TestFill:
    def test_zeros(self, context: ClusterContext) -> None:
        x = m.zeros(context, (5, 4), (2, 2))
        result = x.collect()
        assert result.dtype == np.float64
        assert np.array_equal(result, np.zeros((5, 4)))

    def test_ones(self, context: ClusterContext) -> None:
        x = m.ones(context, (7,), dtype=np.int32)
        result = x.collect()
        assert result.dtype == np.int32
        assert np.array_equal(result, np.ones(7))

    def test_full(self, context: ClusterContext) -> None:
        x = m.full(context, (3, 3), 2.5, (2, 2), placement="cyclicrow")
        assert np.array_equal(x.collect(), np.full((3, 3), 2.5))

    def test_full_dtype_from_value(self, context: ClusterContext) -> None:
        assert m.full(context, (4,), 7).collect().dtype == np.asarray(7).dtype


class TestRandom:
    def test_rand_range(self, context: ClusterContext) -> None:
        result = m.rand(context, (20, 20), (5, 5), seed=1).collect()
        assert result.shape == (20, 20)
        assert ((result >= 0) & (result < 1)).all()

    def test_randn(self, context: ClusterContext) -> None:
        result = m.randn(context, (50, 50), (10, 10), seed=2).collect()
        assert abs(result.mean()) < 0.2
        assert 0.8 < result.std() < 1.2

    @pytest.mark.parametrize(
        "policy", [Placement.BLOCK_ROW, Placement.CYCLIC_COL, [[2, 1]]]
    )
    def test_reproducible_across_placements(
        self, context: ClusterContext, policy: object
    ) -> None:
        expected = m.rand(context, (8, 8), (2, 4), seed=5).collect()
        result = m.rand(context, (8, 8), (2, 4), seed=5, placement=policy)
        assert np.array_equal(result.collect(), expected)

    def test_blocks_differ(self, context: ClusterContext) -> None:
        result = m.rand(context, (4,), (2,), seed=5).collect()
        assert not np.array_equal(result[:2], result[2:])

    def test_seeds_differ(self, context: ClusterContext) -> None:
        a = m.rand(context, (4,), (2,), seed=5).collect()
        b = m.rand(context, (4,), (2,), seed=6).collect()
        assert not np.array_equal(a, b)

    def test_dtype(self, context: ClusterContext) -> None:
        x = m.rand(context, (4,), seed=1, dtype=np.float32)
        assert x.collect().dtype == np.float32
