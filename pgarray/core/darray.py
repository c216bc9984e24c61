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

from typing import Any, Callable, Iterator, Optional, Sequence

import numpy as np
import numpy.typing as npt

from .blocks import AUTO, Blocks, BlockSpecLike, block_domain, derive_blocks
from .context import ClusterContext
from .debug import dagdebug
from .directory import BlockDirectory, Index, Slot, SlotState
from .engine import broadcast_blocks, map_blocks, reduce_blocks
from .operation import (
    ABS,
    ADD,
    MAX,
    MIN,
    MUL,
    NEG,
    POW,
    PROD,
    SUB,
    SUM,
    TRUEDIV,
    OpKind,
    OpLike,
    as_op,
)
from .placement import Placement, PlacementLike
from .shape import Domain, ExtentLike, Shape


class DArray:
    """
    A logical N-D array split into rectangular blocks spread over the
    processors of a cluster.

    A DArray is immutable: operations return new arrays whose blocks are
    computed by tasks depending on the blocks of their inputs. Only
    ``materialize``, ``collect`` and full reductions wait for tasks.
    """

    def __init__(
        self, shape: ExtentLike, blocks: Blocks, directory: BlockDirectory
    ) -> None:
        self._shape = Shape(shape)
        self._blocks = blocks
        self._directory = directory

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def ndim(self) -> int:
        return self._shape.ndim

    @property
    def size(self) -> int:
        return self._shape.volume()

    @property
    def blocks(self) -> Blocks:
        return self._blocks

    @property
    def grid(self) -> Shape:
        """Shape of the block-index grid"""
        return self._directory.shape

    @property
    def directory(self) -> BlockDirectory:
        return self._directory

    @property
    def context(self) -> ClusterContext:
        return self._directory.context

    @property
    def domain(self) -> Domain:
        return Domain.from_shape(self._shape)

    def block_domain(self, index: Sequence[int]) -> Domain:
        return block_domain(self._shape, self._blocks, index)

    def domains(self) -> Iterator[tuple[Index, Domain]]:
        for index in self._directory.indices():
            yield index, self.block_domain(index)

    def chunks(self) -> BlockDirectory:
        """The directory of block slots, for inspection"""
        return self._directory

    def owners(self) -> npt.NDArray[Any]:
        return self._directory.owners()

    def materialize(self) -> DArray:
        """Waits until every block has been computed"""
        self._directory.materialize_all()
        return self

    def fetch_block(self, index: Sequence[int]) -> Any:
        return self._directory.fetch(index)

    def collect(self) -> npt.NDArray[Any]:
        """
        Waits for every block and assembles them into one local array
        """
        self._directory.materialize_all()
        pieces = [
            (domain, np.asarray(self._directory.fetch(index)))
            for index, domain in self.domains()
        ]
        dtype = (
            np.result_type(*(piece for _, piece in pieces))
            if pieces
            else np.float64
        )
        result = np.empty(self._shape.extents, dtype=dtype)
        for domain, piece in pieces:
            if piece.shape != domain.shape.extents:
                raise ValueError(
                    f"Block of shape {piece.shape} does not fit its domain "
                    f"{domain}"
                )
            result[domain.to_slices()] = piece
        dagdebug(
            "collect",
            f"assembled {len(pieces)} block(s) into {self._shape.extents}",
        )
        return result

    def cancel(self) -> int:
        return self._directory.cancel()

    def map_blocks(
        self,
        fn: Callable[[Any, Domain], Any],
        placement: Optional[PlacementLike] = None,
    ) -> DArray:
        return map_blocks(fn, self, placement)

    def map_inplace(self, op: OpLike) -> DArray:
        """
        Replaces every block by ``op(block)``. The new slots are of the next
        generation and depend on the slots they replace.
        """
        op = as_op(op, OpKind.ELEMENTWISE)
        derived = broadcast_blocks(op, [self])
        for index in self._directory.indices():
            new = derived.directory.get(index)
            current = self._directory.get(index)
            assert new.handle is not None
            self._directory.replace(
                index,
                Slot.pending(
                    new.handle,
                    generation=current.generation + 1,
                    provenance=new.provenance,
                ),
            )
        return self

    def reduce(
        self,
        op: OpLike,
        identity: Any = None,
        axis: Optional[int] = None,
    ) -> Any:
        return reduce_blocks(op, identity, self, axis)

    def sum(self, axis: Optional[int] = None) -> Any:
        return reduce_blocks(SUM, None, self, axis)

    def prod(self, axis: Optional[int] = None) -> Any:
        return reduce_blocks(PROD, None, self, axis)

    def min(self, axis: Optional[int] = None) -> Any:
        return reduce_blocks(MIN, None, self, axis)

    def max(self, axis: Optional[int] = None) -> Any:
        return reduce_blocks(MAX, None, self, axis)

    def mean(self, axis: Optional[int] = None) -> Any:
        total = self.sum(axis)
        count = self.size if axis is None else self._shape[axis]
        if axis is None:
            return total / count if count else np.nan
        return total / count

    def __add__(self, other: Any) -> DArray:
        return broadcast_blocks(ADD, [self, other])

    def __radd__(self, other: Any) -> DArray:
        return broadcast_blocks(ADD, [other, self])

    def __sub__(self, other: Any) -> DArray:
        return broadcast_blocks(SUB, [self, other])

    def __rsub__(self, other: Any) -> DArray:
        return broadcast_blocks(SUB, [other, self])

    def __mul__(self, other: Any) -> DArray:
        return broadcast_blocks(MUL, [self, other])

    def __rmul__(self, other: Any) -> DArray:
        return broadcast_blocks(MUL, [other, self])

    def __truediv__(self, other: Any) -> DArray:
        return broadcast_blocks(TRUEDIV, [self, other])

    def __rtruediv__(self, other: Any) -> DArray:
        return broadcast_blocks(TRUEDIV, [other, self])

    def __pow__(self, other: Any) -> DArray:
        return broadcast_blocks(POW, [self, other])

    def __neg__(self) -> DArray:
        return broadcast_blocks(NEG, [self])

    def __abs__(self) -> DArray:
        return broadcast_blocks(ABS, [self])

    def __repr__(self) -> str:
        counts = self._directory.counts()
        state = (
            "materialized"
            if counts[SlotState.RESOLVED.value] == len(self._directory)
            else f"{counts[SlotState.PENDING.value]} pending"
        )
        return (
            f"DArray(shape={self._shape.extents}, blocks={self._blocks}, "
            f"grid={self.grid.extents}, {state})"
        )


def allocate(
    context: ClusterContext,
    shape: ExtentLike,
    blocks: BlockSpecLike,
    generator: Callable[[Domain], Any],
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    """
    Creates a distributed array whose blocks are produced by
    ``generator(block_domain)`` on the processors chosen by ``placement``.

    Parameters
    ----------
    context : ClusterContext
        Cluster to place the array on
    shape : Shape or Iterable[int]
        Shape of the array
    blocks : Blocks, AUTO, or Sequence[int]
        Block lengths per dimension
    generator : Callable[[Domain], array]
        Produces the data of one block
    placement : Placement, ExplicitGrid, str, or processor grid
        Placement policy

    Returns
    -------
    DArray
        Array whose blocks are pending tasks
    """
    block_lengths, _ = derive_blocks(shape, blocks, len(context.machine))
    directory = BlockDirectory.populate(
        context, shape, block_lengths, generator, placement, name="alloc"
    )
    return DArray(shape, block_lengths, directory)


class _SliceOf:
    def __init__(self, source: npt.NDArray[Any]) -> None:
        self._source = source

    def __call__(self, domain: Domain) -> npt.NDArray[Any]:
        return np.array(self._source[domain.to_slices()])


def distribute(
    context: ClusterContext,
    array: Any,
    blocks: BlockSpecLike = AUTO,
    placement: PlacementLike = Placement.ARBITRARY,
) -> DArray:
    """
    Splits a local array into blocks placed on the cluster.
    """
    source = np.asarray(array)
    block_lengths, _ = derive_blocks(
        source.shape, blocks, len(context.machine)
    )
    directory = BlockDirectory.populate(
        context,
        source.shape,
        block_lengths,
        _SliceOf(source),
        placement,
        name="distribute",
    )
    return DArray(source.shape, block_lengths, directory)


def materialize(array: DArray) -> DArray:
    return array.materialize()


def collect(array: DArray) -> npt.NDArray[Any]:
    return array.collect()


def broadcast(
    op: OpLike, *inputs: Any, placement: Optional[PlacementLike] = None
) -> DArray:
    return broadcast_blocks(op, inputs, placement)


def reduce(
    op: OpLike,
    identity: Any,
    array: DArray,
    axis: Optional[int] = None,
) -> Any:
    return reduce_blocks(op, identity, array, axis)
