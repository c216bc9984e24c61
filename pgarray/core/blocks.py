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

import math
import operator
from functools import lru_cache
from typing import Iterable, Iterator, Sequence, Union

from typing_extensions import TypeAlias

from .exception import InvalidBlockSpec
from .shape import Domain, ExtentLike, Shape
from .utils import ndindex


class _AutoBlocks:
    """Marker requesting block lengths derived from the processor count"""

    def __repr__(self) -> str:
        return "AUTO"

    def __reduce__(self) -> str:
        return "AUTO"


AUTO = _AutoBlocks()


class Blocks:
    """
    Uniform block lengths, one per dimension. The last block along each
    dimension is clipped to the array boundary.
    """

    def __init__(self, *lengths: int) -> None:
        if len(lengths) == 1 and isinstance(lengths[0], Iterable):
            lengths = tuple(lengths[0])
        if any(isinstance(length, bool) for length in lengths):
            raise InvalidBlockSpec(
                f"Block lengths must be integers, got {lengths}"
            )
        try:
            self._lengths = tuple(operator.index(v) for v in lengths)
        except TypeError:
            raise InvalidBlockSpec(
                f"Block lengths must be integers, got {lengths}"
            )
        for length in self._lengths:
            if length < 1:
                raise InvalidBlockSpec(
                    f"Block lengths must be positive, got {self._lengths}"
                )

    @property
    def lengths(self) -> tuple[int, ...]:
        return self._lengths

    @property
    def ndim(self) -> int:
        return len(self._lengths)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Blocks) and self._lengths == other._lengths

    def __hash__(self) -> int:
        return hash((Blocks, self._lengths))

    def __repr__(self) -> str:
        return f"Blocks{self._lengths}"


BlockSpecLike: TypeAlias = Union[Blocks, _AutoBlocks, Sequence[int]]


def _factorize(n: int) -> list[int]:
    factors: list[int] = []
    remaining = n
    val = 2
    while val * val <= remaining:
        while remaining % val == 0:
            factors.append(val)
            remaining //= val
        val += 1
    if remaining > 1:
        factors.append(remaining)
    return list(reversed(factors))


def _pieces_2d(nx: int, ny: int, max_pieces: int) -> tuple[int, int]:
    # Use the square root to generate pieces as square as possible, since
    # these most often feed matrix operations
    swap = nx > ny
    if swap:
        nx, ny = ny, nx
    n = math.sqrt(float(max_pieces * nx) / float(ny))
    # n must be an integer with max_pieces % n == 0, so try rounding both
    # ways
    n1 = max(int(math.floor(n + 1e-12)), 1)
    while max_pieces % n1 != 0:
        n1 -= 1
    n2 = max(int(math.ceil(n - 1e-12)), 1)
    while max_pieces % n2 != 0:
        n2 += 1
    # pick whichever gives the shortest long side
    side1 = max(nx // n1, ny // (max_pieces // n1))
    side2 = max(nx // n2, ny // (max_pieces // n2))
    px = n1 if side1 <= side2 else n2
    py = max_pieces // px
    if swap:
        return (min(py, ny), min(px, nx))
    return (min(px, nx), min(py, ny))


@lru_cache(maxsize=256)
def compute_launch_shape(
    extents: tuple[int, ...], num_pieces: int
) -> tuple[int, ...]:
    """
    Number of blocks along each dimension such that the total is at most
    ``num_pieces`` and the blocks are as evenly shaped as possible.
    """
    ndim = len(extents)
    if num_pieces <= 1 or all(ext <= 1 for ext in extents):
        return (1,) * ndim

    # Prune out any dimensions that cannot be split
    temp_shape = tuple(ext for ext in extents if ext > 1)
    temp_dims = tuple(dim for dim, ext in enumerate(extents) if ext > 1)
    volume = 1
    for ext in temp_shape:
        volume *= ext

    dims = len(temp_shape)
    temp_result: tuple[int, ...]
    if dims == 1:
        temp_result = (min(temp_shape[0], num_pieces),)
    elif dims == 2:
        if volume < num_pieces:
            temp_result = temp_shape
        else:
            temp_result = _pieces_2d(temp_shape[0], temp_shape[1], num_pieces)
    else:
        # For higher dimensions evenness matters more than squareness: hand
        # the prime factors of the piece count out to the dimension with the
        # most remaining extent
        local_result = [1] * dims
        for factor in _factorize(num_pieces):
            remaining = tuple(
                (s + r - 1) // r for s, r in zip(temp_shape, local_result)
            )
            big_dim = remaining.index(max(remaining))
            if remaining[big_dim] // factor > 0:
                local_result[big_dim] *= factor
        temp_result = tuple(
            min(r, s) for r, s in zip(local_result, temp_shape)
        )

    result = [1] * ndim
    for dim, pieces in zip(temp_dims, temp_result):
        result[dim] = pieces
    return tuple(result)


def derive_blocks(
    shape: ExtentLike, spec: BlockSpecLike, processor_count: int
) -> tuple[Blocks, Shape]:
    """
    Validates or derives the block lengths for an array of ``shape``.

    Parameters
    ----------
    shape : Shape or Iterable[int]
        Shape of the whole array

    spec : Blocks, AUTO, or Sequence[int]
        Block lengths per dimension, or ``AUTO`` to derive them so that the
        number of blocks is as close as possible to, but not more than,
        ``processor_count``

    processor_count : int
        Number of available processors

    Returns
    -------
    tuple[Blocks, Shape]
        The block lengths and the shape of the block-index grid

    Raises
    ------
    InvalidBlockSpec
        If the rank of ``spec`` does not match the shape, or a length is not
        positive
    """
    shape = Shape(shape)
    if isinstance(spec, _AutoBlocks):
        if processor_count < 1:
            raise InvalidBlockSpec(
                "Automatic block sizing needs at least one processor"
            )
        launch = compute_launch_shape(shape.extents, processor_count)
        blocks = Blocks(
            *(
                max((ext + pieces - 1) // pieces, 1)
                for ext, pieces in zip(shape, launch)
            )
        )
    elif isinstance(spec, Blocks):
        blocks = spec
    else:
        blocks = Blocks(*spec)

    if blocks.ndim != shape.ndim:
        raise InvalidBlockSpec(
            f"Block spec {blocks} has {blocks.ndim} dimension(s) but the "
            f"array shape {shape.extents} has {shape.ndim}"
        )
    # Lengths larger than the array are clipped so the single block along
    # that dimension covers exactly the array
    blocks = Blocks(
        *(
            min(length, ext) if ext > 0 else length
            for length, ext in zip(blocks.lengths, shape)
        )
    )
    return blocks, block_grid_shape(shape, blocks)


def block_grid_shape(shape: ExtentLike, blocks: Blocks) -> Shape:
    return Shape(
        (ext + length - 1) // length
        for ext, length in zip(Shape(shape), blocks.lengths)
    )


def block_domain(
    shape: ExtentLike, blocks: Blocks, index: Sequence[int]
) -> Domain:
    """
    Returns the domain of the block at ``index`` in the block-index grid.
    Blocks at the upper end of a dimension are clipped to the array bounds.
    """
    shape = Shape(shape)
    grid = block_grid_shape(shape, blocks)
    if len(index) != shape.ndim:
        raise IndexError(
            f"Block index {tuple(index)} does not match a {shape.ndim}-D grid"
        )
    lo = []
    hi = []
    for dim, (idx, length, ext) in enumerate(
        zip(index, blocks.lengths, shape)
    ):
        if idx < 0 or idx >= grid[dim]:
            raise IndexError(
                f"Block index {tuple(index)} is out of bounds for block grid "
                f"{grid.extents}"
            )
        lo.append(idx * length)
        hi.append(min((idx + 1) * length, ext) - 1)
    return Domain(lo, hi)


def iter_block_domains(
    shape: ExtentLike, blocks: Blocks
) -> Iterator[tuple[tuple[int, ...], Domain]]:
    """Yields every block index with its domain in row-major order"""
    grid = block_grid_shape(shape, blocks)
    for index in ndindex(grid.extents):
        yield index, block_domain(shape, blocks, index)
