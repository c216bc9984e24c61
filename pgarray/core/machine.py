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

from dataclasses import dataclass
from enum import IntEnum, unique
from typing import Iterable, Iterator, Optional, Sequence, Union, overload


class EmptyMachineError(Exception):
    pass


@unique
class ProcessorKind(IntEnum):
    GPU = 1
    OMP = 2
    CPU = 3


# A compute unit on a worker. Workers are numbered from 1 and processors
# within a worker from 0; a worker's default compute unit is the processor
# with the lowest index.
@dataclass(frozen=True, order=True)
class Processor:
    worker: int
    index: int = 0
    kind: ProcessorKind = ProcessorKind.CPU

    def __repr__(self) -> str:
        return f"{self.kind.name}({self.worker}:{self.index})"


@dataclass(frozen=True)
class Scope:
    """
    Where a chunk may legally run or be accessed. ``None`` fields are
    unconstrained; ``Scope()`` is the unconstrained scope.
    """

    worker: Optional[int] = None
    processor: Optional[Processor] = None

    @staticmethod
    def of(processor: Processor) -> Scope:
        return Scope(worker=processor.worker, processor=processor)

    def allows(self, processor: Processor) -> bool:
        if self.worker is not None and processor.worker != self.worker:
            return False
        if self.processor is not None and processor != self.processor:
            return False
        return True

    def __repr__(self) -> str:
        if self.processor is not None:
            return f"Scope({self.processor!r})"
        if self.worker is not None:
            return f"Scope(worker={self.worker})"
        return "Scope(any)"


ANY_SCOPE = Scope()

ProcessorLike = Union[Processor, int]
MACHINE_KEY = Union[ProcessorKind, slice, int]


class Machine:
    """
    An ordered set of processors. The position of a processor in the machine
    is the "processor list position" used by the placement policies.
    """

    def __init__(self, processors: Iterable[Processor]) -> None:
        seen: dict[Processor, None] = {}
        for proc in processors:
            seen[proc] = None
        self._processors = tuple(seen)
        self._positions = {
            proc: pos for pos, proc in enumerate(self._processors)
        }
        self._defaults: dict[int, Processor] = {}
        for proc in self._processors:
            current = self._defaults.get(proc.worker)
            if current is None or proc.index < current.index:
                self._defaults[proc.worker] = proc

    @staticmethod
    def create(
        num_workers: int,
        procs_per_worker: int = 1,
        kind: ProcessorKind = ProcessorKind.CPU,
    ) -> Machine:
        if num_workers < 1 or procs_per_worker < 1:
            raise EmptyMachineError(
                "A machine needs at least one worker with one processor"
            )
        return Machine(
            Processor(worker, index, kind)
            for worker in range(1, num_workers + 1)
            for index in range(procs_per_worker)
        )

    @property
    def processors(self) -> tuple[Processor, ...]:
        return self._processors

    @property
    def workers(self) -> tuple[int, ...]:
        return tuple(self._defaults)

    @property
    def kinds(self) -> tuple[ProcessorKind, ...]:
        return tuple(sorted(set(p.kind for p in self._processors)))

    @property
    def empty(self) -> bool:
        return len(self._processors) == 0

    def __len__(self) -> int:
        return len(self._processors)

    def __iter__(self) -> Iterator[Processor]:
        return iter(self._processors)

    def __contains__(self, proc: object) -> bool:
        return proc in self._positions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Machine):
            return False
        return self._processors == other._processors

    def __hash__(self) -> int:
        return hash(self._processors)

    def position(self, proc: Processor) -> int:
        return self._positions[proc]

    def default_processor(self, worker: int) -> Processor:
        if worker not in self._defaults:
            raise ValueError(f"Worker {worker} has no processor in {self}")
        return self._defaults[worker]

    def resolve(self, proc: ProcessorLike) -> Processor:
        """
        Maps a processor or a raw worker id onto a processor of this machine
        """
        if isinstance(proc, Processor):
            if proc not in self._positions:
                raise ValueError(f"Processor {proc!r} is not in {self}")
            return proc
        if isinstance(proc, bool) or not isinstance(proc, int):
            raise TypeError(
                f"Expected a Processor or a worker id, got {proc!r}"
            )
        return self.default_processor(proc)

    def only(self, *kinds: ProcessorKind) -> Machine:
        return Machine(p for p in self._processors if p.kind in kinds)

    def on_workers(self, workers: Sequence[int]) -> Machine:
        return Machine(p for p in self._processors if p.worker in workers)

    @overload
    def __getitem__(self, key: ProcessorKind) -> Machine:
        ...

    @overload
    def __getitem__(self, key: Union[slice, int]) -> Machine:
        ...

    def __getitem__(self, key: MACHINE_KEY) -> Machine:
        if isinstance(key, ProcessorKind):
            return self.only(key)
        elif isinstance(key, int):
            return Machine([self._processors[key]])
        elif isinstance(key, slice):
            if key.step is not None and key.step != 1:
                raise ValueError("The slicing step must be 1 or None")
            return Machine(self._processors[key])

        raise KeyError(f"Invalid slicing key: {key}")

    def __and__(self, other: Machine) -> Machine:
        if self is other:
            return self
        return Machine(p for p in self._processors if p in other)

    def __repr__(self) -> str:
        desc = ", ".join(repr(p) for p in self._processors)
        return f"Machine({desc})"
