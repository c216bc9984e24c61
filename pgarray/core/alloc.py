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

from typing import Any, Optional

import numpy as np
import numpy.typing as npt

from .blocks import AUTO, BlockSpecLike
from .context import ClusterContext
from .darray import DArray, allocate
from .placement import Placement, PlacementLike
from .shape import Domain, ExtentLike


class _Fill:
    def __init__(self, value: Any, dtype: npt.DTypeLike) -> None:
        self._value = value
        self._dtype = dtype

    def __call__(self, domain: Domain) -> npt.NDArray[Any]:
        return np.full(domain.shape.extents, self._value, dtype=self._dtype)


class _Random:
    def __init__(
        self, seed: Optional[int], normal: bool, dtype: npt.DTypeLike
    ) -> None:
        self._seed = np.random.SeedSequence(seed).entropy
        self._normal = normal
        self._dtype = dtype

    def __call__(self, domain: Domain) -> npt.NDArray[Any]:
        # Seeded by the block position so that the values do not depend on
        # where or in which order the blocks are computed
        rng = np.random.default_rng([self._seed, *domain.lo])
        size = domain.shape.extents
        if self._normal:
            return rng.standard_normal(size).astype(self._dtype)
        return rng.random(size).astype(self._dtype)


def full(
    context: ClusterContext,
    shape: ExtentLike,
    value: Any,
    blocks: BlockSpecLike = AUTO,
    dtype: npt.DTypeLike = None,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    if dtype is None:
        dtype = np.asarray(value).dtype
    return allocate(context, shape, blocks, _Fill(value, dtype), placement)


def zeros(
    context: ClusterContext,
    shape: ExtentLike,
    blocks: BlockSpecLike = AUTO,
    dtype: npt.DTypeLike = np.float64,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    return full(context, shape, 0, blocks, dtype, placement)


def ones(
    context: ClusterContext,
    shape: ExtentLike,
    blocks: BlockSpecLike = AUTO,
    dtype: npt.DTypeLike = np.float64,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    return full(context, shape, 1, blocks, dtype, placement)


def rand(
    context: ClusterContext,
    shape: ExtentLike,
    blocks: BlockSpecLike = AUTO,
    seed: Optional[int] = None,
    dtype: npt.DTypeLike = np.float64,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    """Uniformly distributed values in [0, 1)"""
    return allocate(
        context, shape, blocks, _Random(seed, False, dtype), placement
    )


def randn(
    context: ClusterContext,
    shape: ExtentLike,
    blocks: BlockSpecLike = AUTO,
    seed: Optional[int] = None,
    dtype: npt.DTypeLike = np.float64,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    """Standard normally distributed values"""
    return allocate(
        context, shape, blocks, _Random(seed, True, dtype), placement
    )
