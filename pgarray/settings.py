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

from .util.settings import (
    EnvOnlySetting,
    PrioritizedSetting,
    convert_bool,
    convert_int,
    convert_str_seq,
)

__all__ = ("settings",)


class PGArrayRuntimeSettings:
    debug: PrioritizedSetting[tuple[str, ...]] = PrioritizedSetting(
        "debug",
        "PGARRAY_DEBUG",
        default=(),
        convert=convert_str_seq,
        help="""
        Comma-separated list of debug categories to print to stderr. Known
        categories are ``submit``, ``resolve``, ``placement``, ``collect``,
        ``release`` and ``cancel``. Use ``all`` to enable every category.
        """,
    )

    colors: PrioritizedSetting[bool] = PrioritizedSetting(
        "colors",
        "PGARRAY_COLORS",
        default=False,
        convert=convert_bool,
        help="""
        Whether to use ANSI colors in debug output and directory reports.
        """,
    )

    precise_exception_trace: PrioritizedSetting[bool] = PrioritizedSetting(
        "precise_exception_trace",
        "PGARRAY_PRECISE_EXCEPTION_TRACE",
        default=False,
        convert=convert_bool,
        help="""
        Whether to capture the stacktrace at the point when a block task is
        submitted, so a block failure can report the user code that issued
        it rather than only the worker-side traceback.
        """,
    )

    test: EnvOnlySetting[bool] = EnvOnlySetting(
        "test",
        "PGARRAY_TEST",
        default=False,
        convert=convert_bool,
        help="""
        Enable test mode. This sets alternative defaults for various other
        settings.

        This is a read-only environment variable setting used by the runtime.
        """,
    )

    num_workers: EnvOnlySetting[int] = EnvOnlySetting(
        "num_workers",
        "PGARRAY_NUM_WORKERS",
        default=1,
        test_default=2,
        convert=convert_int,
        help="""
        Number of workers in a cluster created by ``ClusterContext.local``
        when no machine is given explicitly.

        This is a read-only environment variable setting used by the runtime.
        """,
    )

    threads_per_worker: EnvOnlySetting[int] = EnvOnlySetting(
        "threads_per_worker",
        "PGARRAY_THREADS_PER_WORKER",
        default=4,
        test_default=2,
        convert=convert_int,
        help="""
        Number of compute units (processors) on each worker of a cluster
        created by ``ClusterContext.local``.

        This is a read-only environment variable setting used by the runtime.
        """,
    )

    reduction_radix: EnvOnlySetting[int] = EnvOnlySetting(
        "reduction_radix",
        "PGARRAY_REDUCTION_RADIX",
        default=2,
        test_default=2,
        convert=convert_int,
        help="""
        Fan-in of each combine task of a reduction tree. With the default of
        2, block-level partial results are combined pairwise, bounding the
        depth of the tree to ceil(log2(number of blocks)).

        This is a read-only environment variable setting used by the runtime.
        """,
    )

    resolve_timeout: EnvOnlySetting[int] = EnvOnlySetting(
        "resolve_timeout",
        "PGARRAY_RESOLVE_TIMEOUT",
        default=0,
        test_default=60,
        convert=convert_int,
        help="""
        Number of seconds a single blocking wait on a block may take before
        giving up. Zero means wait forever.

        This is a read-only environment variable setting used by the runtime.
        """,
    )


settings = PGArrayRuntimeSettings()
