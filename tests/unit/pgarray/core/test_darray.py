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

from typing import Any

import numpy as np
import pytest
from pytest_mock import MockerFixture

import pgarray.core.darray as m
from pgarray.core.blocks import AUTO, Blocks
from pgarray.core.context import ClusterContext
from pgarray.core.debug import dagdebug
from pgarray.core.directory import SlotState
from pgarray.core.exception import BlockTaskFailure, InvalidBlockSpec
from pgarray.core.operation import ADD, NEG, SUM
from pgarray.core.placement import Placement
from pgarray.core.shape import Domain, Shape

POLICIES = [
    Placement.ARBITRARY,
    Placement.BLOCK_ROW,
    Placement.BLOCK_COL,
    Placement.CYCLIC_ROW,
    Placement.CYCLIC_COL,
    [[2, 1], [1, 2]],
]


def _seq(shape: tuple[int, ...]) -> Any:
    return np.arange(np.prod(shape), dtype=float).reshape(shape)


class TestConstruction:
    def test_allocate(self, context: ClusterContext) -> None:
        x = m.allocate(
            context,
            (100, 100),
            (50, 50),
            lambda domain: np.ones(domain.shape.extents),
            Placement.BLOCK_ROW,
        )
        assert x.shape == Shape((100, 100))
        assert x.blocks == Blocks(50, 50)
        assert x.grid == Shape((2, 2))
        assert x.ndim == 2
        assert x.size == 10000
        assert np.array_equal(x.collect(), np.ones((100, 100)))

    def test_block_row_two_processors(self) -> None:
        with ClusterContext.local(2, threads_per_worker=1) as ctx:
            x = m.allocate(
                ctx,
                (100, 100),
                (50, 50),
                lambda domain: np.ones(domain.shape.extents),
                Placement.BLOCK_ROW,
            )
            assert np.array_equal(x.collect(), np.ones((100, 100)))
            owners = x.owners()
            assert len(set(owners.flat)) == 2
            # each processor owns one contiguous row of blocks
            assert owners[0, 0] == owners[0, 1]
            assert owners[1, 0] == owners[1, 1]
            assert owners[0, 0] != owners[1, 0]
            assert owners[0, 0].worker == 1
            assert owners[1, 0].worker == 2

    def test_allocate_invalid_blocks(self, context: ClusterContext) -> None:
        with pytest.raises(InvalidBlockSpec):
            m.allocate(context, (4, 4), (2,), np.zeros)

    def test_distribute_auto(self, context: ClusterContext) -> None:
        data = _seq((8, 8))
        x = m.distribute(context, data)
        assert x.grid.volume() <= len(context.machine)
        assert np.array_equal(x.collect(), data)

    @pytest.mark.parametrize("policy", POLICIES)
    @pytest.mark.parametrize(
        "shape, blocks",
        [
            ((7, 5), (2, 2)),
            ((6, 6), (6, 1)),
            ((3, 9), AUTO),
            ((4, 4), (3, 3)),
        ],
    )
    def test_round_trip(
        self,
        context: ClusterContext,
        policy: Any,
        shape: tuple[int, ...],
        blocks: Any,
    ) -> None:
        data = np.random.default_rng(11).random(shape)
        x = m.distribute(context, data, blocks, policy)
        assert np.array_equal(x.collect(), data)

    def test_round_trip_1d(self, context: ClusterContext) -> None:
        data = np.arange(13)
        x = m.distribute(context, data, (4,), Placement.CYCLIC_ROW)
        result = m.collect(x)
        assert result.dtype == data.dtype
        assert np.array_equal(result, data)

    def test_round_trip_3d(self, context: ClusterContext) -> None:
        data = _seq((3, 4, 5))
        x = m.distribute(context, data, (2, 3, 2), [[[1, 2]]])
        assert np.array_equal(x.collect(), data)

    def test_distribute_copies(self, context: ClusterContext) -> None:
        data = np.ones((4, 4))
        x = m.distribute(context, data, (2, 2)).materialize()
        data[:] = 5
        assert np.array_equal(x.collect(), np.ones((4, 4)))

    def test_empty(self, context: ClusterContext) -> None:
        x = m.distribute(context, np.ones((0, 4)), (2, 2))
        assert x.collect().shape == (0, 4)


class TestInspection:
    def test_domains(self, context: ClusterContext) -> None:
        x = m.distribute(context, _seq((5, 3)), (2, 2))
        domains = dict(x.domains())
        assert domains[(2, 1)] == Domain((4, 2), (4, 2))
        assert x.block_domain((0, 0)) == Domain((0, 0), (1, 1))
        assert x.domain == Domain((0, 0), (4, 2))

    def test_chunks(self, context: ClusterContext) -> None:
        x = m.distribute(context, _seq((4, 4)), (2, 2))
        assert x.chunks() is x.directory
        assert x.context is context

    def test_fetch_block(self, context: ClusterContext) -> None:
        data = _seq((4, 4))
        x = m.distribute(context, data, (2, 2))
        assert np.array_equal(x.fetch_block((1, 0)), data[2:4, 0:2])

    def test_materialize(self, context: ClusterContext) -> None:
        x = m.distribute(context, _seq((4, 4)), (2, 2))
        assert m.materialize(x) is x
        assert all(slot.state is SlotState.RESOLVED for slot in x.directory)
        assert "materialized" in repr(x)

    def test_collect_bad_block(self, context: ClusterContext) -> None:
        x = m.allocate(context, (4,), (2,), lambda domain: np.ones(3))
        with pytest.raises(ValueError):
            x.collect()

    def test_collect_failure(self, context: ClusterContext) -> None:
        def init(domain: Domain) -> Any:
            if domain.lo[0] > 0:
                raise ArithmeticError("bad block")
            return np.ones(domain.shape.extents)

        x = m.allocate(context, (6,), (2,), init)
        with pytest.raises(BlockTaskFailure) as excinfo:
            x.collect()
        assert excinfo.value.index == (1,)
        assert set(x.directory.failures()) == {(1,), (2,)}

    def test_collect_debug(
        self, context: ClusterContext, mocker: MockerFixture
    ) -> None:
        spy = mocker.patch.object(m, "dagdebug", wraps=dagdebug)
        m.distribute(context, np.ones(4), (2,)).collect()
        spy.assert_called_once_with(
            "collect", "assembled 2 block(s) into (4,)"
        )


class TestOperations:
    def test_broadcast_scenario(self, context: ClusterContext) -> None:
        x = m.distribute(context, np.full((10, 10), 2.0))
        result = m.broadcast(np.multiply, m.broadcast(ADD, x, x), 3)
        assert np.array_equal(m.collect(result), np.full((10, 10), 12.0))

    def test_operators(self, context: ClusterContext) -> None:
        data = _seq((4, 4)) + 1
        x = m.distribute(context, data, (2, 2))
        np.testing.assert_allclose((x + x).collect(), data + data)
        np.testing.assert_allclose((1 + x).collect(), 1 + data)
        np.testing.assert_allclose((x - 1).collect(), data - 1)
        np.testing.assert_allclose((1 - x).collect(), 1 - data)
        np.testing.assert_allclose((x * 2).collect(), data * 2)
        np.testing.assert_allclose((2 * x).collect(), 2 * data)
        np.testing.assert_allclose((x / 2).collect(), data / 2)
        np.testing.assert_allclose((2 / x).collect(), 2 / data)
        np.testing.assert_allclose((x**2).collect(), data**2)
        np.testing.assert_allclose((-x).collect(), -data)
        np.testing.assert_allclose(abs(-x).collect(), data)

    def test_map_blocks(self, context: ClusterContext) -> None:
        x = m.distribute(context, np.zeros((4, 4)), (2, 2))
        y = x.map_blocks(lambda block, domain: block + domain.lo[0])
        assert np.array_equal(y.collect()[:, 0], [0, 0, 2, 2])

    def test_map_inplace(self, context: ClusterContext) -> None:
        data = _seq((4, 4))
        x = m.distribute(context, data, (2, 2)).materialize()
        assert x.map_inplace(NEG) is x
        assert all(slot.generation == 1 for slot in x.directory)
        assert np.array_equal(x.collect(), -data)
        x.map_inplace(np.abs)
        assert all(slot.generation == 2 for slot in x.directory)
        assert np.array_equal(x.collect(), data)

    def test_map_inplace_pending(self, context: ClusterContext) -> None:
        data = _seq((4, 4))
        x = m.distribute(context, data, (2, 2))
        x.map_inplace(NEG)
        assert np.array_equal(x.collect(), -data)

    def test_cancel_nothing_pending(self, context: ClusterContext) -> None:
        x = m.distribute(context, np.ones(4), (2,)).materialize()
        assert x.cancel() == 0


class TestReductions:
    def test_full(self, context: ClusterContext) -> None:
        data = _seq((6, 5)) - 10
        x = m.distribute(context, data, (4, 2))
        assert x.sum() == data.sum()
        assert x.prod() == data.prod()
        assert x.min() == data.min()
        assert x.max() == data.max()
        assert x.mean() == pytest.approx(data.mean())

    def test_reduce(self, context: ClusterContext) -> None:
        data = _seq((6, 5))
        x = m.distribute(context, data, (4, 2))
        assert m.reduce(SUM, None, x) == data.sum()
        assert x.reduce(np.maximum, -np.inf) == data.max()

    def test_axis(self, context: ClusterContext) -> None:
        data = _seq((6, 5))
        x = m.distribute(context, data, (4, 2))
        np.testing.assert_allclose(
            x.sum(axis=0).collect(), data.sum(axis=0, keepdims=True)
        )
        np.testing.assert_allclose(
            x.mean(axis=1).collect(), data.mean(axis=1, keepdims=True)
        )

    def test_empty(self, context: ClusterContext) -> None:
        x = m.distribute(context, np.ones((0, 3)), (1, 1))
        assert x.sum() == 0
        assert x.prod() == 1
        assert x.max() == -np.inf
        assert np.isnan(x.mean())

