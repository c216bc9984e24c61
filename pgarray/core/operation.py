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

import functools
from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Callable, Optional, Union

import numpy as np


@unique
class OpKind(Enum):
    ELEMENTWISE = "elementwise"
    REDUCE = "reduce"
    LINALG = "linalg"


@unique
class BlockShapeClass(Enum):
    # every operand is a block
    DENSE = "dense"
    # at least one operand is a scalar broadcast to every block, or the
    # operands are block-level partial results
    SCALAR = "scalar"


@dataclass(frozen=True)
class Op:
    kind: OpKind
    fn: Callable[..., Any]
    name: str
    identity: Any = None

    def __repr__(self) -> str:
        return f"Op({self.kind.value}:{self.name})"


def elementwise(fn: Callable[..., Any], name: Optional[str] = None) -> Op:
    return Op(OpKind.ELEMENTWISE, fn, name or _name_of(fn))


def reduction(
    fn: Callable[[Any, Any], Any],
    identity: Any,
    name: Optional[str] = None,
) -> Op:
    """
    An associative binary operation with its algebraic identity. Only
    associativity is assumed: partial results are always combined in
    block-index order.
    """
    return Op(OpKind.REDUCE, fn, name or _name_of(fn), identity)


def _name_of(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__name__", type(fn).__name__)


OpLike = Union[Op, Callable[..., Any]]


def as_op(op: OpLike, kind: OpKind, identity: Any = None) -> Op:
    if isinstance(op, Op):
        if op.kind is not kind:
            raise ValueError(f"Expected a {kind.value} operation, got {op}")
        if identity is not None and identity != op.identity:
            return Op(op.kind, op.fn, op.name, identity)
        return op
    if kind is OpKind.REDUCE:
        if identity is None:
            raise ValueError(
                f"Reducing with {_name_of(op)} requires an identity"
            )
        return reduction(op, identity)
    return Op(kind, op, _name_of(op))


_KERNELS: dict[tuple[OpKind, BlockShapeClass], Callable[..., Any]] = {}


def register_kernel(
    kind: OpKind, shape_class: BlockShapeClass
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        _KERNELS[(kind, shape_class)] = fn
        return fn

    return decorator


def lookup_kernel(
    kind: OpKind, shape_class: BlockShapeClass
) -> Callable[..., Any]:
    try:
        return _KERNELS[(kind, shape_class)]
    except KeyError:
        raise NotImplementedError(
            f"No {kind.value} kernel for {shape_class.value} operands"
        )


@register_kernel(OpKind.ELEMENTWISE, BlockShapeClass.DENSE)
def _elementwise_dense(op: Op, *blocks: Any) -> Any:
    return np.asarray(op.fn(*blocks))


@register_kernel(OpKind.ELEMENTWISE, BlockShapeClass.SCALAR)
def _elementwise_scalar(op: Op, *operands: Any) -> Any:
    # Scalars take part in numpy's type promotion like 0-d arrays would
    return np.asarray(op.fn(*operands))


@register_kernel(OpKind.REDUCE, BlockShapeClass.DENSE)
def _reduce_block(op: Op, block: Any, axis: Optional[int]) -> Any:
    block = np.asarray(block)
    if axis is None:
        if block.size == 0:
            return op.identity
        if isinstance(op.fn, np.ufunc):
            return op.fn.reduce(block, axis=None)
        return functools.reduce(op.fn, block.flat)
    if block.shape[axis] == 0:
        shape = list(block.shape)
        shape[axis] = 1
        return np.full(shape, op.identity)
    if isinstance(op.fn, np.ufunc):
        return op.fn.reduce(block, axis=axis, keepdims=True)
    reduced = np.apply_along_axis(
        lambda v: functools.reduce(op.fn, v), axis, block
    )
    return np.expand_dims(reduced, axis)


@register_kernel(OpKind.REDUCE, BlockShapeClass.SCALAR)
def _combine_partials(op: Op, *partials: Any) -> Any:
    return functools.reduce(op.fn, partials)


ADD = elementwise(np.add, "add")
SUB = elementwise(np.subtract, "sub")
MUL = elementwise(np.multiply, "mul")
TRUEDIV = elementwise(np.true_divide, "truediv")
POW = elementwise(np.power, "pow")
NEG = elementwise(np.negative, "neg")
ABS = elementwise(np.absolute, "abs")
MAXIMUM = elementwise(np.maximum, "maximum")
MINIMUM = elementwise(np.minimum, "minimum")

SUM = reduction(np.add, 0, "sum")
PROD = reduction(np.multiply, 1, "prod")
MIN = reduction(np.minimum, np.inf, "min")
MAX = reduction(np.maximum, -np.inf, "max")
