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

import threading
import weakref
from concurrent.futures import CancelledError
from dataclasses import dataclass, replace as dc_replace
from enum import Enum, unique
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    Optional,
    Sequence,
    Union,
)

import numpy as np
import numpy.typing as npt

from ..settings import settings
from ..util import ui
from .blocks import BlockSpecLike, block_domain, derive_blocks
from .debug import dagdebug
from .exception import (
    BlockTaskFailure,
    FetchFailure,
    PGArrayError,
    PlacementOutsideScope,
)
from .machine import ANY_SCOPE, Processor, Scope
from .memory import ChunkRef, MemoryStore
from .placement import PlacementLike, assign
from .scheduler import TaskHandle
from .shape import Domain, ExtentLike, Shape
from .utils import capture_traceback_repr, ndindex

if TYPE_CHECKING:
    from .context import ClusterContext


Index = tuple[int, ...]


@unique
class SlotState(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class Slot:
    """
    The state of one block. A ``PENDING`` slot refers to the task producing
    the block; a ``RESOLVED`` slot to the chunk holding its data; a
    ``FAILED`` slot to the failure of its task. ``RESOLVED`` and ``FAILED``
    are terminal.
    """

    state: SlotState
    handle: Optional[TaskHandle] = None
    chunk: Optional[ChunkRef] = None
    failure: Optional[PGArrayError] = None
    generation: int = 0
    provenance: Optional[str] = None

    @staticmethod
    def pending(
        handle: TaskHandle,
        generation: int = 0,
        provenance: Optional[str] = None,
    ) -> Slot:
        return Slot(
            SlotState.PENDING,
            handle=handle,
            generation=generation,
            provenance=provenance,
        )

    @staticmethod
    def resolved(chunk: ChunkRef, generation: int = 0) -> Slot:
        return Slot(SlotState.RESOLVED, chunk=chunk, generation=generation)

    @property
    def owner(self) -> Optional[Processor]:
        if self.chunk is not None:
            return self.chunk.owner
        if self.handle is not None:
            return self.handle.processor
        return None

    @property
    def scope(self) -> Optional[Scope]:
        return None if self.chunk is None else self.chunk.scope

    @property
    def settled(self) -> bool:
        return self.state is not SlotState.PENDING

    def dependency(self) -> Union[ChunkRef, TaskHandle]:
        """
        What a derived task should take as input for this block: the chunk
        when resolved, otherwise the producing task
        """
        if self.chunk is not None:
            return self.chunk
        assert self.handle is not None
        return self.handle


def settle(
    slot: Slot,
    index: Index,
    chunk: Optional[ChunkRef] = None,
    error: Optional[BaseException] = None,
) -> Slot:
    """
    State transition of a pending slot once its task has completed. Settled
    slots are returned unchanged.
    """
    if slot.settled:
        return slot
    if error is None:
        assert chunk is not None
        return dc_replace(slot, state=SlotState.RESOLVED, chunk=chunk)
    failure: PGArrayError
    if isinstance(error, FetchFailure):
        failure = error
    elif isinstance(error, BlockTaskFailure):
        failure = error.at(index)
    else:
        failure = BlockTaskFailure(index, error, slot.provenance)
    return dc_replace(slot, state=SlotState.FAILED, failure=failure)


def _release_chunks(store: MemoryStore, chunks: list[ChunkRef]) -> None:
    while chunks:
        store.release(chunks.pop())


class BlockDirectory:
    """
    The grid of slots of a distributed array, one slot per block. The grid
    itself never changes once the directory is handed out; only individual
    slots move from pending to settled.
    """

    def __init__(
        self,
        context: ClusterContext,
        grid_shape: ExtentLike,
        slots: npt.NDArray[Any],
    ) -> None:
        self._context = context
        self._grid = Shape(grid_shape)
        if tuple(slots.shape) != self._grid.extents:
            raise ValueError(
                f"Slot grid of shape {slots.shape} does not match block "
                f"grid {self._grid.extents}"
            )
        self._slots = slots
        self._lock = threading.Lock()
        self._fetch_failures: dict[Index, FetchFailure] = {}
        # Chunk references this directory holds, released on collection
        self._held: list[ChunkRef] = []
        for slot in slots.flat:
            if slot.chunk is not None:
                self._held.append(slot.chunk)
        self._finalizer = weakref.finalize(
            self, _release_chunks, context.store, self._held
        )

    @classmethod
    def from_tasks(
        cls,
        context: ClusterContext,
        grid_shape: ExtentLike,
        submit: Callable[[Index], TaskHandle],
    ) -> BlockDirectory:
        """
        Builds a directory of pending slots by calling ``submit`` once per
        block index, in row-major order
        """
        grid = Shape(grid_shape)
        provenance = (
            capture_traceback_repr()
            if settings.precise_exception_trace()
            else None
        )
        slots = np.empty(grid.extents, dtype=object)
        for index in ndindex(grid.extents):
            slots[index] = Slot.pending(submit(index), provenance=provenance)
        return cls(context, grid, slots)

    @classmethod
    def from_chunks(
        cls,
        context: ClusterContext,
        chunks: npt.NDArray[Any],
    ) -> BlockDirectory:
        """
        Builds a directory of resolved slots sharing existing chunks
        """
        slots = np.empty(chunks.shape, dtype=object)
        for index in ndindex(chunks.shape):
            context.store.retain(chunks[index])
            slots[index] = Slot.resolved(chunks[index])
        return cls(context, chunks.shape, slots)

    @classmethod
    def populate(
        cls,
        context: ClusterContext,
        shape: ExtentLike,
        spec: BlockSpecLike,
        init_fn: Callable[[Domain], Any],
        placement: PlacementLike,
        name: str = "",
    ) -> BlockDirectory:
        """
        Submits ``init_fn(block_domain)`` for every block of an array of
        ``shape`` to the processor chosen by ``placement``.

        Configuration errors (bad block spec, unknown or mismatched
        placement, owners outside the context's default scope) are raised
        before any task is submitted.
        """
        shape = Shape(shape)
        blocks, grid = derive_blocks(shape, spec, len(context.machine))
        owners = assign(grid, placement, context.machine)
        _check_scope(context, owners)
        scheduler = context.scheduler

        def submit(index: Index) -> TaskHandle:
            domain = block_domain(shape, blocks, index)
            return scheduler.submit(
                owners[index],
                init_fn,
                (domain,),
                scope=_scope_for(context, owners[index]),
                name=f"{name or 'init'}{index}",
            )

        return cls.from_tasks(context, grid, submit)

    @property
    def context(self) -> ClusterContext:
        return self._context

    @property
    def shape(self) -> Shape:
        """Shape of the block-index grid"""
        return self._grid

    @property
    def ndim(self) -> int:
        return self._grid.ndim

    def __len__(self) -> int:
        return self._grid.volume()

    def indices(self) -> Iterator[Index]:
        return ndindex(self._grid.extents)

    def __iter__(self) -> Iterator[Slot]:
        for index in self.indices():
            yield self._slots[index]

    def _check_index(self, index: Sequence[int]) -> Index:
        index = tuple(index)
        if len(index) != self.ndim or any(
            i < 0 or i >= ext for i, ext in zip(index, self._grid)
        ):
            raise IndexError(
                f"Block index {index} is out of bounds for block grid "
                f"{self._grid.extents}"
            )
        return index

    def get(self, index: Sequence[int]) -> Slot:
        """Current state of a slot. Never blocks."""
        return self._slots[self._check_index(index)]

    def _settle(
        self,
        index: Index,
        expected: Slot,
        chunk: Optional[ChunkRef] = None,
        error: Optional[BaseException] = None,
    ) -> Slot:
        with self._lock:
            current = self._slots[index]
            # Another caller settled the slot, or it was replaced
            if current is not expected:
                return current
            new_slot = settle(current, index, chunk, error)
            if new_slot.chunk is not None and current.chunk is None:
                self._context.store.retain(new_slot.chunk)
                self._held.append(new_slot.chunk)
            self._slots[index] = new_slot
        dagdebug("resolve", f"block {index} -> {new_slot.state.value}")
        return new_slot

    def _settle_finished(self, index: Index, slot: Slot) -> Slot:
        # Settles from the outcome of the task, never from how waiting ended
        assert slot.handle is not None
        future = slot.handle.future
        if future.cancelled():
            return self._settle(index, slot, error=CancelledError())
        error = future.exception()
        if error is not None:
            return self._settle(index, slot, error=error)
        return self._settle(index, slot, chunk=future.result())

    def resolve(self, index: Sequence[int]) -> ChunkRef:
        """
        Waits until the slot at ``index`` settles and returns its chunk.

        Raises
        ------
        BlockTaskFailure
            If the task producing the block failed or was cancelled
        """
        index = self._check_index(index)
        slot = self._slots[index]
        while slot.state is SlotState.PENDING:
            assert slot.handle is not None
            try:
                self._context.scheduler.wait(
                    slot.handle, timeout=self._context.resolve_timeout
                )
            except (Exception, CancelledError):
                # Still running, so the wait timed out
                if not slot.handle.done():
                    raise
            slot = self._settle_finished(index, slot)
        if slot.state is SlotState.FAILED:
            assert slot.failure is not None
            raise slot.failure from _cause_of(slot.failure)
        assert slot.chunk is not None
        return slot.chunk

    def refresh(self) -> None:
        """Settles every slot whose task already finished, without waiting"""
        for index in self.indices():
            slot = self._slots[index]
            if slot.state is SlotState.PENDING:
                assert slot.handle is not None
                if slot.handle.done():
                    self._settle_finished(index, slot)

    def materialize_all(self) -> None:
        """
        Waits for every slot to settle. All slots are waited on so that every
        failure is recorded; the first failure in block-index order is then
        raised.
        """
        first: Optional[PGArrayError] = None
        for index in self.indices():
            try:
                self.resolve(index)
            except PGArrayError as exc:
                if first is None:
                    first = exc
        if first is not None:
            raise first from _cause_of(first)

    def fetch(self, index: Sequence[int]) -> Any:
        """Resolves a block and fetches its data from the store"""
        index = self._check_index(index)
        chunk = self.resolve(index)
        try:
            return self._context.store.fetch_local(chunk)
        except FetchFailure as exc:
            with self._lock:
                self._fetch_failures.setdefault(index, exc)
            raise

    def replace(self, index: Sequence[int], slot: Slot) -> None:
        """
        Replaces a slot by one of the next generation, as done by in-place
        block operations
        """
        index = self._check_index(index)
        with self._lock:
            current = self._slots[index]
            if slot.generation != current.generation + 1:
                raise ValueError(
                    f"Slot {index} is at generation {current.generation}; "
                    f"cannot replace it with generation {slot.generation}"
                )
            if slot.chunk is not None:
                self._context.store.retain(slot.chunk)
                self._held.append(slot.chunk)
            if current.chunk is not None:
                self._held.remove(current.chunk)
                self._context.store.release(current.chunk)
            self._slots[index] = slot
            self._fetch_failures.pop(index, None)

    def cancel(self) -> int:
        """
        Requests cancellation of every still-pending slot's task. Returns the
        number of tasks that were cancelled before they started.
        """
        cancelled = 0
        for slot in self:
            if slot.state is SlotState.PENDING:
                assert slot.handle is not None
                if self._context.scheduler.cancel(slot.handle):
                    cancelled += 1
        return cancelled

    def owners(self) -> npt.NDArray[Any]:
        """Grid of the processors owning (or computing) each block"""
        result = np.empty(self._grid.extents, dtype=object)
        for index in self.indices():
            result[index] = self._slots[index].owner
        return result

    def chunks(self) -> npt.NDArray[Any]:
        """Grid of chunk references; waits for every slot"""
        self.materialize_all()
        result = np.empty(self._grid.extents, dtype=object)
        for index in self.indices():
            result[index] = self._slots[index].chunk
        return result

    def failures(self) -> dict[Index, PGArrayError]:
        """Every failure observed so far, keyed by block index"""
        self.refresh()
        result: dict[Index, PGArrayError] = {}
        for index in self.indices():
            slot = self._slots[index]
            if slot.failure is not None:
                result[index] = slot.failure
            elif index in self._fetch_failures:
                result[index] = self._fetch_failures[index]
        return result

    def counts(self) -> dict[str, int]:
        counts = {state.value: 0 for state in SlotState}
        for slot in self:
            counts[slot.state.value] += 1
        return counts

    def report(self) -> str:
        """Text summary of slot states and failures"""
        self.refresh()
        lines = [
            ui.rule(f"BlockDirectory {self._grid.extents}"),
            ui.kvtable(self.counts()),
        ]
        failures = self.failures()
        if failures:
            lines.append(ui.section("Failures"))
            for index, failure in failures.items():
                lines.append(ui.error(f"{index}: {failure}"))
        else:
            lines.append(ui.passed("No failures"))
        return "\n".join(lines)

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.counts().items())
        return f"BlockDirectory({self._grid.extents}, {counts})"


def _cause_of(failure: PGArrayError) -> Optional[BaseException]:
    if isinstance(failure, BlockTaskFailure):
        return failure.cause
    return None


def _check_scope(context: ClusterContext, owners: npt.NDArray[Any]) -> None:
    scope = context.default_scope
    if not any(scope.allows(p) for p in context.machine):
        raise PlacementOutsideScope(
            f"No processor of the machine is in the default {scope!r}"
        )
    for owner in owners.flat:
        if owner is not None and not scope.allows(owner):
            raise PlacementOutsideScope(
                f"Block owner {owner!r} is outside the default {scope!r}"
            )


def _scope_for(
    context: ClusterContext, owner: Optional[Processor]
) -> Optional[Scope]:
    scope = context.default_scope
    if scope == ANY_SCOPE:
        return None if owner is None else Scope.of(owner)
    # The scheduler only places unowned blocks inside the scope
    return scope
