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

import sys
import traceback
from itertools import product
from types import TracebackType
from typing import Iterator, Optional


def prod(values: tuple[int, ...]) -> int:
    result = 1
    for v in values:
        result *= v
    return result


def ndindex(shape: tuple[int, ...]) -> Iterator[tuple[int, ...]]:
    """Row-major iteration over every multi-index of ``shape``"""
    return product(*(range(ext) for ext in shape))


def capture_traceback_repr(
    skip_core_frames: bool = True,
) -> Optional[str]:
    tb = None
    # Start from this frame: walk_stack(None) skips the caller on 3.11+
    for frame, _ in traceback.walk_stack(sys._getframe()):
        if skip_core_frames and frame.f_globals.get(
            "__name__", ""
        ).startswith("pgarray"):
            continue
        tb = TracebackType(
            tb,
            tb_frame=frame,
            tb_lasti=frame.f_lasti,
            tb_lineno=frame.f_lineno,
        )
    return "".join(traceback.format_tb(tb)) if tb is not None else None
