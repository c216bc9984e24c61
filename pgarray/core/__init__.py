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

from .exception import (
    PGArrayError,
    InvalidBlockSpec,
    UnknownPlacementPolicy,
    PlacementRankMismatch,
    IncompatiblePartitioning,
    PlacementOutsideScope,
    BlockTaskFailure,
    FetchFailure,
)
from .shape import Shape, Domain
from .blocks import AUTO, Blocks, derive_blocks, block_domain
from .machine import (
    ANY_SCOPE,
    EmptyMachineError,
    Machine,
    Processor,
    ProcessorKind,
    Scope,
)
from .placement import ExplicitGrid, Placement, assign
from .memory import ChunkRef, LocalMemoryStore, MemoryStore
from .scheduler import LocalScheduler, TaskHandle, TaskScheduler
from .context import ClusterContext
from .directory import BlockDirectory, Slot, SlotState
from .operation import (
    Op,
    OpKind,
    BlockShapeClass,
    elementwise,
    reduction,
    register_kernel,
    lookup_kernel,
    ADD,
    SUB,
    MUL,
    TRUEDIV,
    POW,
    NEG,
    ABS,
    MAXIMUM,
    MINIMUM,
    SUM,
    PROD,
    MIN,
    MAX,
)
from .darray import (
    DArray,
    allocate,
    distribute,
    materialize,
    collect,
    broadcast,
    reduce,
)
from .alloc import zeros, ones, full, rand, randn
from .linalg import triu, tril, transpose, norm, isapprox
