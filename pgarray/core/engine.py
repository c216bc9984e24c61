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

from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

import numpy as np
import numpy.typing as npt

from ..settings import settings
from .blocks import Blocks, block_domain
from .directory import BlockDirectory, Index
from .exception import IncompatiblePartitioning
from .operation import (
    BlockShapeClass,
    Op,
    OpKind,
    OpLike,
    as_op,
    lookup_kernel,
)
from .placement import PlacementLike, assign
from .scheduler import TaskHandle
from .shape import Shape

if TYPE_CHECKING:
    from .context import ClusterContext
    from .darray import DArray


def check_compatible(arrays: Sequence[DArray]) -> None:
    """
    Raises ``IncompatiblePartitioning`` unless every array has the same shape
    and block lengths, and therefore the same block domains
    """
    first = arrays[0]
    for other in arrays[1:]:
        if other.shape != first.shape:
            raise IncompatiblePartitioning(
                f"Cannot combine arrays of shapes {first.shape.extents} and "
                f"{other.shape.extents}"
            )
        if other.blocks != first.blocks:
            raise IncompatiblePartitioning(
                f"Cannot combine arrays partitioned into {first.blocks} and "
                f"{other.blocks}"
            )
        if other.context.scheduler is not first.context.scheduler:
            raise IncompatiblePartitioning(
                "Cannot combine arrays from different cluster contexts"
            )


def _owners(
    source: DArray, placement: Optional[PlacementLike]
) -> npt.NDArray[Any]:
    if placement is None:
        return source.directory.owners()
    return assign(source.grid, placement, source.context.machine)


def broadcast_blocks(
    op: OpLike,
    inputs: Sequence[Any],
    placement: Optional[PlacementLike] = None,
) -> DArray:
    """
    Applies ``op`` elementwise, block by block.

    Every ``DArray`` among ``inputs`` must share the same partitioning; other
    inputs are scalars passed to every block task. Each new block task
    depends on the matching input blocks: resolved blocks are passed as
    chunks, pending ones as the task producing them.

    Parameters
    ----------
    op : Op or callable
        Elementwise operation
    inputs : Sequence
        Operands, at least one of them a ``DArray``
    placement : PlacementLike, optional
        Placement of the output blocks. Defaults to the placement of the
        first ``DArray`` operand.

    Returns
    -------
    DArray
        Array whose blocks are pending tasks
    """
    from .darray import DArray

    op = as_op(op, OpKind.ELEMENTWISE)
    arrays = [x for x in inputs if isinstance(x, DArray)]
    if not arrays:
        raise ValueError("broadcast needs at least one distributed array")
    check_compatible(arrays)

    first = arrays[0]
    shape_class = (
        BlockShapeClass.DENSE
        if len(arrays) == len(inputs)
        else BlockShapeClass.SCALAR
    )
    kernel = partial(lookup_kernel(OpKind.ELEMENTWISE, shape_class), op)
    owners = _owners(first, placement)
    scheduler = first.context.scheduler

    def submit(index: Index) -> TaskHandle:
        args = [
            x.directory.get(index).dependency()
            if isinstance(x, DArray)
            else x
            for x in inputs
        ]
        return scheduler.submit(
            owners[index], kernel, args, name=f"{op.name}{index}"
        )

    directory = BlockDirectory.from_tasks(first.context, first.grid, submit)
    return DArray(first.shape, first.blocks, directory)


def map_blocks(
    fn: Callable[[Any, Any], Any],
    array: DArray,
    placement: Optional[PlacementLike] = None,
) -> DArray:
    """
    Applies ``fn(block, domain)`` to every block. ``fn`` must return a block
    of the same shape.
    """
    from .darray import DArray

    owners = _owners(array, placement)
    scheduler = array.context.scheduler

    def submit(index: Index) -> TaskHandle:
        domain = block_domain(array.shape, array.blocks, index)
        return scheduler.submit(
            owners[index],
            fn,
            (array.directory.get(index).dependency(), domain),
            name=f"map{index}",
        )

    directory = BlockDirectory.from_tasks(array.context, array.grid, submit)
    return DArray(array.shape, array.blocks, directory)


def tree_combine(
    context: ClusterContext,
    op: Op,
    parts: Sequence[TaskHandle],
    radix: Optional[int] = None,
) -> TaskHandle:
    """
    Combines partial results with a tree of tasks. Each task folds up to
    ``radix`` consecutive partials left to right, so the combination order
    only depends on the order of ``parts``, and the depth of the tree is
    ``ceil(log_radix(len(parts)))``.
    """
    radix = settings.reduction_radix() if radix is None else radix
    if radix < 2:
        raise ValueError(f"Reduction radix must be at least 2, got {radix}")
    assert len(parts) > 0
    combine = partial(lookup_kernel(OpKind.REDUCE, BlockShapeClass.SCALAR), op)
    level = list(parts)
    depth = 0
    while len(level) > 1:
        depth += 1
        level = [
            context.scheduler.submit(
                group[0].processor,
                combine,
                group,
                name=f"{op.name}-combine{depth}.{i}",
            )
            if len(group) > 1
            else group[0]
            for i, group in enumerate(
                level[start : start + radix]
                for start in range(0, len(level), radix)
            )
        ]
    return level[0]


def _local_partials(
    op: Op, array: DArray, axis: Optional[int]
) -> npt.NDArray[Any]:
    reduce_block = partial(
        lookup_kernel(OpKind.REDUCE, BlockShapeClass.DENSE), op
    )
    owners = array.directory.owners()
    partials = np.empty(array.grid.extents, dtype=object)
    for index in array.directory.indices():
        partials[index] = array.context.scheduler.submit(
            owners[index],
            reduce_block,
            (array.directory.get(index).dependency(), axis),
            name=f"{op.name}-local{index}",
        )
    return partials


def reduce_blocks(
    op: OpLike,
    identity: Any,
    array: DArray,
    axis: Optional[int] = None,
) -> Any:
    """
    Reduces ``array`` with the associative operation ``op``.

    Every block is first reduced locally by a task on the processor owning
    it; the partial results are then combined with a tree of tasks in
    block-index order, so the result does not depend on the placement.

    Parameters
    ----------
    op : Op or callable
        Associative binary operation
    identity : Any
        Algebraic identity of ``op``. May be None when ``op`` is a reduction
        ``Op`` carrying its identity.
    array : DArray
        Array to reduce
    axis : int, optional
        Dimension to reduce. When None, every element is reduced and the
        result is returned as a scalar after waiting for it; otherwise a
        ``DArray`` with extent 1 along ``axis`` is returned without waiting.
    """
    from .darray import DArray, allocate

    op = as_op(op, OpKind.REDUCE, identity)
    context = array.context

    if axis is None:
        if len(array.directory) == 0:
            return op.identity
        partials = _local_partials(op, array, None)
        root = tree_combine(context, op, list(partials.flat))
        result = BlockDirectory.from_tasks(context, (), lambda _: root)
        return result.fetch(())

    ndim = array.ndim
    if axis < 0:
        axis += ndim
    if axis < 0 or axis >= ndim:
        raise ValueError(f"Invalid axis {axis} for a {ndim}-D array")

    out_shape = array.shape.update(axis, 1)
    out_lengths = list(array.blocks.lengths)
    out_lengths[axis] = 1
    out_blocks = Blocks(*out_lengths)
    out_grid = array.grid.update(axis, 1)

    if array.grid[axis] == 0:
        identity_value = op.identity
        return allocate(
            context,
            out_shape,
            out_blocks,
            lambda domain: np.full(domain.shape.extents, identity_value),
        )

    partials = _local_partials(op, array, axis)

    def submit(index: Index) -> TaskHandle:
        column = [
            partials[index[:axis] + (k,) + index[axis + 1 :]]
            for k in range(array.grid[axis])
        ]
        return tree_combine(context, op, column)

    directory = BlockDirectory.from_tasks(context, out_grid, submit)
    return DArray(out_shape, out_blocks, directory)


def transpose_blocks(array: DArray) -> DArray:
    """
    Transposes a 2-D array. The block grid is transposed as well and every
    output block is computed on the processor owning its source block.
    """
    from .darray import DArray

    if array.ndim != 2:
        raise ValueError(
            f"transpose expects a 2-D array, got {array.ndim} dimension(s)"
        )
    owners = array.directory.owners()
    scheduler = array.context.scheduler
    out_shape = Shape(tuple(reversed(array.shape.extents)))
    out_blocks = Blocks(*reversed(array.blocks.lengths))
    out_grid = Shape(tuple(reversed(array.grid.extents)))

    def submit(index: Index) -> TaskHandle:
        source = tuple(reversed(index))
        return scheduler.submit(
            owners[source],
            np.transpose,
            (array.directory.get(source).dependency(),),
            name=f"transpose{index}",
        )

    directory = BlockDirectory.from_tasks(array.context, out_grid, submit)
    return DArray(out_shape, out_blocks, directory)

