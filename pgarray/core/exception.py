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

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .memory import ChunkRef


class PGArrayError(Exception):
    """Base class of every error raised by pgarray"""


class InvalidBlockSpec(PGArrayError, ValueError):
    pass


class UnknownPlacementPolicy(PGArrayError, ValueError):
    pass


class PlacementRankMismatch(PGArrayError, ValueError):
    pass


class IncompatiblePartitioning(PGArrayError, ValueError):
    pass


class PlacementOutsideScope(PGArrayError, ValueError):
    pass


class BlockTaskFailure(PGArrayError):
    """
    The computation that should have produced a block failed.

    The original exception is kept in ``cause`` and is also chained as
    ``__cause__`` when the failure is raised.
    """

    def __init__(
        self,
        index: Optional[tuple[int, ...]],
        cause: BaseException,
        tb_repr: Optional[str] = None,
    ) -> None:
        self.index = index
        self.cause = cause
        self.tb_repr = tb_repr
        where = "" if index is None else f" for block {index}"
        message = (
            f"Block task failed{where}: {type(cause).__name__}: {cause}"
        )
        if tb_repr is not None:
            message += "\nSubmitted from:\n" + tb_repr.rstrip("\n")
        super().__init__(message)

    def at(self, index: tuple[int, ...]) -> BlockTaskFailure:
        """Return the same failure attributed to the block ``index``"""
        if self.index == index:
            return self
        return BlockTaskFailure(index, self.cause, self.tb_repr)

    def raise_exception(self) -> None:
        raise self from self.cause


class FetchFailure(PGArrayError):
    def __init__(self, chunk: ChunkRef | Any, reason: str) -> None:
        self.chunk = chunk
        self.reason = reason
        super().__init__(f"Could not fetch {chunk}: {reason}")
