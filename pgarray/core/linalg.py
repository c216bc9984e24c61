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
from typing import Any, Optional

import numpy as np

from .darray import DArray
from .engine import check_compatible, map_blocks, transpose_blocks
from .operation import (
    BlockShapeClass,
    Op,
    OpKind,
    lookup_kernel,
    register_kernel,
)
from .shape import Domain


@register_kernel(OpKind.LINALG, BlockShapeClass.DENSE)
def _triangular_mask(op: Op, k: int, block: Any, domain: Domain) -> Any:
    # Shift the diagonal offset from global to block-local coordinates
    return op.fn(block, k - (domain.lo[1] - domain.lo[0]))


def _triangular(fn: Any, name: str, array: DArray, k: int) -> DArray:
    if array.ndim != 2:
        raise ValueError(
            f"{name} expects a 2-D array, got {array.ndim} dimension(s)"
        )
    op = Op(OpKind.LINALG, fn, name)
    kernel = partial(
        lookup_kernel(OpKind.LINALG, BlockShapeClass.DENSE), op, k
    )
    return map_blocks(kernel, array)


def triu(array: DArray, k: int = 0) -> DArray:
    """Upper triangle of a 2-D array: elements with ``j - i >= k``"""
    return _triangular(np.triu, "triu", array, k)


def tril(array: DArray, k: int = 0) -> DArray:
    """Lower triangle of a 2-D array: elements with ``j - i <= k``"""
    return _triangular(np.tril, "tril", array, k)


def transpose(array: DArray) -> DArray:
    return transpose_blocks(array)


def norm(array: DArray) -> Any:
    """Frobenius norm"""
    return np.sqrt((abs(array) ** 2).sum())


def isapprox(
    a: DArray,
    b: DArray,
    rtol: Optional[float] = None,
    atol: float = 0.0,
) -> bool:
    """
    Whether ``norm(a - b) <= max(atol, rtol * max(norm(a), norm(b)))``.
    ``rtol`` defaults to the square root of the double precision machine
    epsilon when ``atol`` is zero, and to zero otherwise.
    """
    check_compatible([a, b])
    if rtol is None:
        rtol = 0.0 if atol > 0 else float(np.sqrt(np.finfo(np.float64).eps))
    difference = norm(a - b)
    return bool(difference <= max(atol, rtol * max(norm(a), norm(b))))
