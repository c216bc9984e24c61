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

from typing import Iterable, Iterator, Sequence, Union, overload

from typing_extensions import TypeAlias

from .utils import prod

ExtentLike: TypeAlias = Union["Shape", int, Iterable[int]]


def _cast_tuple(value: ExtentLike, ndim: int) -> tuple[int, ...]:
    if isinstance(value, Shape):
        return value.extents
    if isinstance(value, int):
        return (value,) * ndim
    return tuple(value)


class _ShapeComparisonResult(tuple[bool, ...]):
    def __bool__(self) -> bool:
        assert False, "use any() or all()"


class Shape:
    _extents: tuple[int, ...]

    def __init__(self, extents: ExtentLike) -> None:
        """
        Constructs a new shape object

        Parameters
        ----------
        extents: int, Iterable[int], or Shape
           Extents to construct the shape object with
        """
        if isinstance(extents, Shape):
            self._extents = extents.extents
        elif isinstance(extents, int):
            self._extents = (extents,)
        else:
            self._extents = tuple(int(ext) for ext in extents)
        if any(ext < 0 for ext in self._extents):
            raise ValueError(f"Extents must be non-negative: {self._extents}")

    @property
    def extents(self) -> tuple[int, ...]:
        return self._extents

    def __str__(self) -> str:
        return f"Shape({self._extents})"

    def __repr__(self) -> str:
        return str(self)

    @overload
    def __getitem__(self, idx: int) -> int:
        ...

    @overload
    def __getitem__(self, idx: slice) -> Shape:
        ...

    def __getitem__(self, idx: Union[int, slice]) -> Union[Shape, int]:
        if isinstance(idx, slice):
            return Shape(self._extents[idx])
        else:
            return self._extents[idx]

    def __len__(self) -> int:
        return len(self._extents)

    def __iter__(self) -> Iterator[int]:
        return iter(self._extents)

    @property
    def ndim(self) -> int:
        return len(self._extents)

    def volume(self) -> int:
        """
        Returns the shape's volume

        Returns
        ------
        int
            Volume of the shape
        """
        return prod(self._extents)

    def __hash__(self) -> int:
        return hash((self.__class__, self._extents))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Shape):
            return self._extents == other._extents
        elif isinstance(other, (int, Iterable)):
            return self._extents == _cast_tuple(other, self.ndim)
        else:
            return False

    def __le__(self, other: ExtentLike) -> _ShapeComparisonResult:
        rh = _cast_tuple(other, self.ndim)
        assert len(self._extents) == len(rh)
        return _ShapeComparisonResult(
            l <= r for (l, r) in zip(self._extents, rh)
        )

    def __lt__(self, other: ExtentLike) -> _ShapeComparisonResult:
        rh = _cast_tuple(other, self.ndim)
        assert len(self._extents) == len(rh)
        return _ShapeComparisonResult(
            l < r for (l, r) in zip(self._extents, rh)
        )

    def __ge__(self, other: ExtentLike) -> _ShapeComparisonResult:
        rh = _cast_tuple(other, self.ndim)
        assert len(self._extents) == len(rh)
        return _ShapeComparisonResult(
            l >= r for (l, r) in zip(self._extents, rh)
        )

    def __gt__(self, other: ExtentLike) -> _ShapeComparisonResult:
        rh = _cast_tuple(other, self.ndim)
        assert len(self._extents) == len(rh)
        return _ShapeComparisonResult(
            l > r for (l, r) in zip(self._extents, rh)
        )

    def update(self, dim: int, new_value: int) -> Shape:
        """Returns the shape with the extent of ``dim`` replaced"""
        if dim < 0 or dim >= self.ndim:
            raise ValueError(
                f"Invalid dimension {dim} for a {self.ndim}-D shape"
            )
        return Shape(
            self._extents[:dim] + (new_value,) + self._extents[dim + 1 :]
        )


class Domain:
    """
    An N-D box of indices with one inclusive range per dimension.

    Indices are 0-based. The domain of a whole array of shape ``(m, n)`` is
    ``Domain((0, 0), (m - 1, n - 1))``; a block's domain is a sub-box of it.
    """

    __slots__ = ("_lo", "_hi")

    def __init__(self, lo: Sequence[int], hi: Sequence[int]) -> None:
        if len(lo) != len(hi):
            raise ValueError(
                f"Bounds of different dimensions: {tuple(lo)} and {tuple(hi)}"
            )
        self._lo = tuple(int(v) for v in lo)
        self._hi = tuple(int(v) for v in hi)
        for dim, (l, h) in enumerate(zip(self._lo, self._hi)):
            if h < l:
                raise ValueError(
                    f"Empty range [{l}, {h}] in dimension {dim} of a domain"
                )

    @staticmethod
    def from_shape(shape: ExtentLike) -> Domain:
        extents = Shape(shape).extents
        return Domain((0,) * len(extents), tuple(e - 1 for e in extents))

    @property
    def lo(self) -> tuple[int, ...]:
        return self._lo

    @property
    def hi(self) -> tuple[int, ...]:
        return self._hi

    @property
    def ndim(self) -> int:
        return len(self._lo)

    @property
    def shape(self) -> Shape:
        return Shape(h - l + 1 for l, h in zip(self._lo, self._hi))

    @property
    def ranges(self) -> tuple[range, ...]:
        return tuple(range(l, h + 1) for l, h in zip(self._lo, self._hi))

    def volume(self) -> int:
        return self.shape.volume()

    def to_slices(
        self, origin: Sequence[int] | None = None
    ) -> tuple[slice, ...]:
        """
        Returns the slices selecting this domain out of an array whose first
        element sits at ``origin`` (the global origin by default)
        """
        if origin is None:
            origin = (0,) * self.ndim
        return tuple(
            slice(l - o, h - o + 1)
            for l, h, o in zip(self._lo, self._hi, origin)
        )

    def contains(self, other: Domain) -> bool:
        return all(
            ol >= l and oh <= h
            for l, h, ol, oh in zip(self._lo, self._hi, other._lo, other._hi)
        )

    def overlaps(self, other: Domain) -> bool:
        return all(
            not (oh < l or h < ol)
            for l, h, ol, oh in zip(self._lo, self._hi, other._lo, other._hi)
        )

    def transpose(self) -> Domain:
        return Domain(tuple(reversed(self._lo)), tuple(reversed(self._hi)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Domain):
            return NotImplemented
        return self._lo == other._lo and self._hi == other._hi

    def __hash__(self) -> int:
        return hash((self._lo, self._hi))

    def __repr__(self) -> str:
        ranges = ", ".join(f"{l}:{h}" for l, h in zip(self._lo, self._hi))
        return f"Domain({ranges})"
