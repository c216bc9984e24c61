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

from typing import Any, Optional

from ..settings import settings
from .machine import ANY_SCOPE, Machine, ProcessorKind, Scope
from .memory import LocalMemoryStore, MemoryStore
from .scheduler import LocalScheduler, TaskScheduler


class ClusterContext:
    def __init__(
        self,
        machine: Machine,
        scheduler: TaskScheduler,
        store: Optional[MemoryStore] = None,
        default_scope: Scope = ANY_SCOPE,
    ) -> None:
        """
        Session state handed to every construction and placement call:
        the available processors, the scheduler running block tasks, and the
        store holding block data.

        Parameters
        ----------
        machine : Machine
            Processors available for placement
        scheduler : TaskScheduler
            Scheduler running block tasks
        store : MemoryStore, optional
            Store holding resolved block data. Defaults to the scheduler's.
        default_scope : Scope
            Scope given to chunks created without an explicit one
        """
        if machine.empty:
            raise ValueError("A cluster context needs a non-empty machine")
        self._machine = machine
        self._scheduler = scheduler
        self._store = scheduler.store if store is None else store
        self._default_scope = default_scope

    @staticmethod
    def local(
        num_workers: Optional[int] = None,
        threads_per_worker: Optional[int] = None,
        kind: ProcessorKind = ProcessorKind.CPU,
    ) -> ClusterContext:
        """
        Creates an in-process cluster with ``num_workers`` workers of
        ``threads_per_worker`` processors each (defaults come from
        ``PGARRAY_NUM_WORKERS`` and ``PGARRAY_THREADS_PER_WORKER``).
        """
        if num_workers is None:
            num_workers = settings.num_workers()
        if threads_per_worker is None:
            threads_per_worker = settings.threads_per_worker()
        machine = Machine.create(num_workers, threads_per_worker, kind)
        store = LocalMemoryStore()
        return ClusterContext(machine, LocalScheduler(machine, store), store)

    @property
    def machine(self) -> Machine:
        return self._machine

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def default_scope(self) -> Scope:
        return self._default_scope

    @property
    def resolve_timeout(self) -> Optional[float]:
        timeout = settings.resolve_timeout()
        return None if timeout <= 0 else float(timeout)

    def restrict(self, machine: Machine) -> ClusterContext:
        """Returns a context placing blocks on a subset of the processors"""
        narrowed = self._machine & machine
        if narrowed.empty:
            raise ValueError(
                f"{machine} shares no processor with {self._machine}"
            )
        return ClusterContext(
            narrowed, self._scheduler, self._store, self._default_scope
        )

    def shutdown(self, wait: bool = True) -> None:
        self._scheduler.shutdown(wait=wait)

    def __enter__(self) -> ClusterContext:
        return self

    def __exit__(self, _: Any, __: Any, ___: Any) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"ClusterContext({self._machine!r})"
