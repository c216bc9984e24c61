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

import itertools
import threading
import weakref
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable, Optional, Sequence

from .debug import dagdebug
from .machine import Machine, Processor, Scope
from .memory import ChunkRef, MemoryStore


def _release_result(store: MemoryStore, future: Future[ChunkRef]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    store.release(future.result())


class TaskHandle:
    def __init__(
        self,
        task_id: int,
        processor: Optional[Processor],
        future: Future[ChunkRef],
        store: MemoryStore,
        name: str = "",
    ) -> None:
        """
        A TaskHandle represents a block computation submitted to a scheduler.
        Once the task finishes, the handle holds one reference on the chunk
        the task produced, released when the handle is collected.

        Parameters
        ----------
        task_id : int
            Scheduler-unique id of the task
        processor : Processor, optional
            Processor the task runs on. ``None`` until the scheduler has
            picked one for an unplaced task.
        future : concurrent.futures.Future
            Completion signal of the task
        """
        self.task_id = task_id
        self.processor = processor
        self.name = name
        self._future = future
        self._finalizer = weakref.finalize(
            self, future.add_done_callback, _ReleaseOnDone(store)
        )

    @property
    def future(self) -> Future[ChunkRef]:
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        name = f" {self.name}" if self.name else ""
        return (
            f"TaskHandle({self.task_id}{name} on {self.processor!r}, {state})"
        )


class _ReleaseOnDone:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def __call__(self, future: Future[ChunkRef]) -> None:
        _release_result(self._store, future)


class TaskScheduler(ABC):
    """
    The interface block operations use to run work on processors. The
    scheduler decides how tasks execute; callers only submit them and wait.
    """

    @property
    @abstractmethod
    def store(self) -> MemoryStore:
        ...

    @abstractmethod
    def submit(
        self,
        processor: Optional[Processor],
        fn: Callable[..., Any],
        args: Sequence[Any] = (),
        deps: Iterable[TaskHandle] = (),
        scope: Optional[Scope] = None,
        name: str = "",
    ) -> TaskHandle:
        """
        Submits ``fn(*args)`` to run on ``processor`` (or on a processor of
        the scheduler's choice when ``None``) after every handle in ``deps``
        and every ``TaskHandle`` in ``args`` has completed. ``TaskHandle``
        and ``ChunkRef`` arguments are replaced by the data they refer to.

        The processor must be allowed by ``scope``, which becomes the scope
        of the produced chunk.
        """
        ...

    @abstractmethod
    def wait(
        self, handle: TaskHandle, timeout: Optional[float] = None
    ) -> ChunkRef:
        """
        Blocks until the task completes and returns its chunk, or raises the
        exception the task failed with
        """
        ...

    @abstractmethod
    def cancel(self, handle: TaskHandle) -> bool:
        ...

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        ...


class LocalScheduler(TaskScheduler):
    """
    Runs tasks on a thread pool in this process. A task is only handed to
    the pool once all of its dependencies have completed, so no pool thread
    ever blocks on another task.
    """

    def __init__(
        self,
        machine: Machine,
        store: MemoryStore,
        max_threads: Optional[int] = None,
    ) -> None:
        self._machine = machine
        self._store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max_threads or max(len(machine), 1),
            thread_name_prefix="pgarray",
        )
        self._task_ids = itertools.count(1)
        self._lock = threading.Lock()
        self._inflight: dict[Processor, int] = {p: 0 for p in machine}
        self._submitted = 0
        self._closed = False

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def machine(self) -> Machine:
        return self._machine

    @property
    def submitted(self) -> int:
        """Number of tasks submitted so far"""
        return self._submitted

    def _pick_processor(self, scope: Optional[Scope]) -> Processor:
        candidates = [
            p for p in self._machine if scope is None or scope.allows(p)
        ]
        if not candidates:
            raise ValueError(f"No processor of the machine is in {scope!r}")
        # Least loaded, ties broken by processor list position
        return min(
            candidates,
            key=lambda p: (self._inflight[p], self._machine.position(p)),
        )

    def submit(
        self,
        processor: Optional[Processor],
        fn: Callable[..., Any],
        args: Sequence[Any] = (),
        deps: Iterable[TaskHandle] = (),
        scope: Optional[Scope] = None,
        name: str = "",
    ) -> TaskHandle:
        args = tuple(args)
        all_deps = list(deps) + [a for a in args if isinstance(a, TaskHandle)]
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot submit to a shut down scheduler")
            if processor is None:
                processor = self._pick_processor(scope)
            elif processor not in self._inflight:
                raise ValueError(
                    f"Processor {processor!r} is not part of the machine"
                )
            elif scope is not None and not scope.allows(processor):
                raise ValueError(
                    f"Processor {processor!r} is outside {scope!r}"
                )
            self._inflight[processor] += 1
            self._submitted += 1
            task_id = next(self._task_ids)

        # Chunk inputs stay alive until the task is done with them
        inputs = [a for a in args if isinstance(a, ChunkRef)]
        for ref in inputs:
            self._store.retain(ref)

        future: Future[ChunkRef] = Future()
        handle = TaskHandle(task_id, processor, future, self._store, name)
        dagdebug("submit", f"{handle!r} after {len(all_deps)} dependencies")

        target = processor
        future.add_done_callback(lambda _: self._retire(target, inputs))

        pending = [len(all_deps)]
        pending_lock = threading.Lock()

        def launch() -> None:
            try:
                self._executor.submit(
                    self._run, future, target, fn, args, all_deps, scope
                )
            except RuntimeError as exc:
                # The pool was shut down while the task waited on its inputs
                if future.set_running_or_notify_cancel():
                    future.set_exception(exc)

        def on_dep_done(dep: Future[ChunkRef]) -> None:
            with pending_lock:
                pending[0] -= 1
                ready = pending[0] == 0
            if ready:
                launch()

        if not all_deps:
            launch()
        for dep in all_deps:
            dep.future.add_done_callback(on_dep_done)
        return handle

    def _retire(self, processor: Processor, inputs: list[ChunkRef]) -> None:
        with self._lock:
            self._inflight[processor] -= 1
        for ref in inputs:
            self._store.release(ref)

    def _run(
        self,
        future: Future[ChunkRef],
        processor: Processor,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        deps: list[TaskHandle],
        scope: Optional[Scope],
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            for dep in deps:
                # Propagates the first failed dependency as-is
                dep.future.result()
            values = [self._materialize_arg(arg) for arg in args]
            result = fn(*values)
            ref = self._store.put(processor, result, scope)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(ref)

    def _materialize_arg(self, arg: Any) -> Any:
        if isinstance(arg, TaskHandle):
            return self._store.fetch_local(arg.future.result())
        if isinstance(arg, ChunkRef):
            return self._store.fetch_local(arg)
        return arg

    def wait(
        self, handle: TaskHandle, timeout: Optional[float] = None
    ) -> ChunkRef:
        return handle.future.result(timeout=timeout)

    def cancel(self, handle: TaskHandle) -> bool:
        cancelled = handle.future.cancel()
        dagdebug(
            "cancel",
            f"{handle!r}: {'cancelled' if cancelled else 'already running'}",
        )
        return cancelled

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
