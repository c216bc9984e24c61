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

from typing import Iterator

import pytest

from pgarray.core.context import ClusterContext
from pgarray.settings import settings


@pytest.fixture
def context() -> Iterator[ClusterContext]:
    with ClusterContext.local(num_workers=2, threads_per_worker=2) as ctx:
        yield ctx


@pytest.fixture
def single() -> Iterator[ClusterContext]:
    with ClusterContext.local(num_workers=1, threads_per_worker=1) as ctx:
        yield ctx


@pytest.fixture(autouse=True)
def reset_settings() -> Iterator[None]:
    yield
    settings.debug.unset_value()
    settings.colors.unset_value()
    settings.precise_exception_trace.unset_value()
