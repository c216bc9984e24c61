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
"""Helper functions for adding colors to diagnostic text output.

Colors are produced with ``colorama``. They follow the ``PGARRAY_COLORS``
setting unless ``ENABLED`` is forced to True or False.

"""
from __future__ import annotations

import sys
from typing import Optional

import colorama

from ..settings import settings

__all__ = (
    "bright",
    "cyan",
    "dim",
    "enabled",
    "green",
    "red",
    "white",
    "yellow",
)


# None defers to settings.colors, which is off by default
ENABLED: Optional[bool] = None


def enabled() -> bool:
    return settings.colors() if ENABLED is None else ENABLED


def _wrap(code: str, text: str) -> str:
    if not enabled():
        return text
    return f"{code}{text}{colorama.Style.RESET_ALL}"


def bright(text: str) -> str:
    return _wrap(colorama.Style.BRIGHT, text)


def dim(text: str) -> str:
    return _wrap(colorama.Style.DIM, text)


def white(text: str) -> str:
    return _wrap(colorama.Fore.WHITE, text)


def cyan(text: str) -> str:
    return _wrap(colorama.Fore.CYAN, text)


def red(text: str) -> str:
    return _wrap(colorama.Fore.RED, text)


def green(text: str) -> str:
    return _wrap(colorama.Fore.GREEN, text)


def yellow(text: str) -> str:
    return _wrap(colorama.Fore.YELLOW, text)


if sys.platform == "win32":
    colorama.init()
