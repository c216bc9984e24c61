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

from ..settings import settings
from ..util import ui

__all__ = ("CATEGORIES", "dagdebug", "enabled")

CATEGORIES = ("submit", "resolve", "placement", "collect", "release", "cancel")


def enabled(category: str) -> bool:
    active = settings.debug()
    return category in active or "all" in active


def dagdebug(category: str, text: str) -> None:
    """Print a debug line if ``category`` is enabled in ``PGARRAY_DEBUG``"""
    if not enabled(category):
        return
    print(ui.debug(category, text), file=sys.stderr)
