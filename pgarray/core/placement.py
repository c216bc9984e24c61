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

from enum import Enum, unique
from typing import Any, Optional, Sequence, Union

import numpy as np
import numpy.typing as npt
from typing_extensions import TypeAlias

from .debug import dagdebug
from .exception import PlacementRankMismatch, UnknownPlacementPolicy
from .machine import Machine, Processor
from .shape import ExtentLike, Shape
from .utils import ndindex


@unique
class Placement(Enum):
    ARBITRARY = "arbitrary"
    BLOCK_ROW = "blockrow"
    BLOCK_COL = "blockcol"
    CYCLIC_ROW = "cyclicrow"
    CYCLIC_COL = "cycliccol"

    @staticmethod
    def parse(name: str) -> Placement:
        key = name.lower().lstrip(":").replace("_", "").replace("-", "")
        for policy in Placement:
            if policy.value == key:
                return policy
        raise UnknownPlacementPolicy(
            f"Unknown placement policy {name!r}; expected one of "
            f"{', '.join(p.value for p in Placement)} or an explicit "
            "processor grid"
        )

    @property
    def dim(self) -> Optional[int]:
        """Block-grid dimension the policy partitions"""
        if self in (Placement.BLOCK_ROW, Placement.CYCLIC_ROW):
            return 0
        if self in (Placement.BLOCK_COL, Placement.CYCLIC_COL):
            return 1
        return None


class ExplicitGrid:
    """
    A caller-supplied N-D grid of processors (or raw worker ids) tiled
    block-cyclically over the block-index grid.
    """

    def __init__(self, assignment: Any) -> None:
        grid = np.empty(np.shape(assignment), dtype=object)
        source = np.asarray(assignment, dtype=object)
        for index in ndindex(grid.shape):
            grid[index] = source[index]
        if grid.size == 0:
            raise UnknownPlacementPolicy(
                "An explicit processor grid must not be empty"
            )
        self._assignment = grid

    @property
    def assignment(self) -> npt.NDArray[Any]:
        return self._assignment

    @property
    def ndim(self) -> int:
        return self._assignment.ndim

    @property
    def shape(self) -> tuple[int, ...]:
        return self._assignment.shape

    def resolve(self, machine: Machine) -> ExplicitGrid:
        resolved = np.empty(self.shape, dtype=object)
        for index in ndindex(self.shape):
            resolved[index] = machine.resolve(self._assignment[index])
        return ExplicitGrid(resolved)

    def lookup(self, index: Sequence[int]) -> Any:
        return self._assignment[
            tuple(i % s for i, s in zip(index, self.shape))
        ]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ExplicitGrid) and np.array_equal(
            self._assignment, other._assignment
        )

    def __repr__(self) -> str:
        return f"ExplicitGrid({self._assignment.tolist()!r})"


PlacementLike: TypeAlias = Union[Placement, ExplicitGrid, str, Any]


def as_policy(policy: PlacementLike) -> Union[Placement, ExplicitGrid]:
    """Normalizes a policy name, enum member or processor grid"""
    if isinstance(policy, (Placement, ExplicitGrid)):
        return policy
    if isinstance(policy, str):
        return Placement.parse(policy)
    if isinstance(policy, (list, tuple, np.ndarray)):
        return ExplicitGrid(policy)
    raise UnknownPlacementPolicy(f"Unknown placement policy {policy!r}")


def block_run_owner(index: int, count: int, num_procs: int) -> int:
    """
    Position of the processor owning run element ``index`` when ``count``
    elements are split into contiguous runs over ``num_procs`` processors.

    The first ``count % num_procs`` processors receive runs of
    ``ceil(count / num_procs)`` elements and the rest runs of
    ``floor(count / num_procs)``. With fewer elements than processors, the
    first ``count`` processors receive one element each.
    """
    if count <= num_procs:
        return index
    q, rem = divmod(count, num_procs)
    big = q + 1
    if index < rem * big:
        return index // big
    return rem + (index - rem * big) // q


def check_policy(
    grid_shape: ExtentLike, policy: PlacementLike, machine: Machine
) -> Union[Placement, ExplicitGrid]:
    """
    Validates a placement against a block grid, raising configuration errors
    before any block task is submitted
    """
    grid = Shape(grid_shape)
    normalized = as_policy(policy)
    if isinstance(normalized, ExplicitGrid):
        if normalized.ndim != grid.ndim:
            raise PlacementRankMismatch(
                f"Explicit processor grid of rank {normalized.ndim} cannot "
                f"place a block grid of rank {grid.ndim}"
            )
        return normalized.resolve(machine)
    dim = normalized.dim
    if dim is not None and dim >= grid.ndim:
        raise PlacementRankMismatch(
            f"{normalized.name} placement needs a block grid with at least "
            f"{dim + 1} dimension(s), got rank {grid.ndim}"
        )
    if machine.empty:
        raise ValueError("Cannot place blocks on an empty machine")
    return normalized


def assign(
    grid_shape: ExtentLike, policy: PlacementLike, machine: Machine
) -> npt.NDArray[Any]:
    """
    Maps every block index of a block grid to a processor.

    Parameters
    ----------
    grid_shape : Shape or Iterable[int]
        Shape of the block-index grid

    policy : Placement, ExplicitGrid, str, or array of processors
        Placement policy

    machine : Machine
        Available processors, in processor list position order

    Returns
    -------
    numpy.ndarray
        Object array of the same shape as the block grid. Entries are
        ``Processor`` objects, or ``None`` under ``Placement.ARBITRARY``,
        where the scheduler picks a processor at submission time.
    """
    grid = Shape(grid_shape)
    normalized = check_policy(grid, policy, machine)
    procs = machine.processors
    result = np.empty(grid.extents, dtype=object)

    owner: Optional[Processor]
    for index in ndindex(grid.extents):
        if isinstance(normalized, ExplicitGrid):
            owner = normalized.lookup(index)
        elif normalized is Placement.ARBITRARY:
            owner = None
        else:
            dim = normalized.dim
            assert dim is not None
            if normalized in (Placement.BLOCK_ROW, Placement.BLOCK_COL):
                owner = procs[
                    block_run_owner(index[dim], grid[dim], len(procs))
                ]
            else:
                owner = procs[index[dim] % len(procs)]
        result[index] = owner

    dagdebug(
        "placement",
        f"{normalized!r} over block grid {grid.extents}: "
        f"{len(set(result.flat) - {None})} distinct processor(s)",
    )
    return result
