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

import pytest

import pgarray.settings as m
from pgarray.util.settings import EnvOnlySetting, PrioritizedSetting

_expected_settings = (
    "debug",
    "colors",
    "precise_exception_trace",
    "test",
    "num_workers",
    "threads_per_worker",
    "reduction_radix",
    "resolve_timeout",
)

_env_only = (
    "test",
    "num_workers",
    "threads_per_worker",
    "reduction_radix",
    "resolve_timeout",
)


class TestSettings:
    def test_standard_settings(self) -> None:
        settings = [
            k
            for k, v in m.settings.__class__.__dict__.items()
            if isinstance(v, (PrioritizedSetting, EnvOnlySetting))
        ]
        assert set(settings) == set(_expected_settings)

    @pytest.mark.parametrize("name", _expected_settings)
    def test_prefix(self, name: str) -> None:
        ps = getattr(m.settings, name)
        assert ps.env_var.startswith("PGARRAY_")

    @pytest.mark.parametrize("name", _env_only)
    def test_env_only(self, name: str) -> None:
        assert isinstance(getattr(m.settings, name), EnvOnlySetting)

    def test_types(self) -> None:
        assert m.settings.debug.convert_type == "tuple[str, ...]"
        assert m.settings.colors.convert_type == 'bool ("0" or "1")'
        assert (
            m.settings.precise_exception_trace.convert_type
            == 'bool ("0" or "1")'
        )
        assert m.settings.test.convert_type == 'bool ("0" or "1")'
        assert m.settings.num_workers.convert_type == "int"
        assert m.settings.threads_per_worker.convert_type == "int"
        assert m.settings.reduction_radix.convert_type == "int"
        assert m.settings.resolve_timeout.convert_type == "int"


class TestDefaults:
    def test_debug(self) -> None:
        assert m.settings.debug.default == ()

    def test_colors(self) -> None:
        assert m.settings.colors.default is False

    def test_precise_exception_trace(self) -> None:
        assert m.settings.precise_exception_trace.default is False

    def test_num_workers(self) -> None:
        assert m.settings.num_workers.default == 1
        assert m.settings.num_workers.test_default == 2

    def test_threads_per_worker(self) -> None:
        assert m.settings.threads_per_worker.default == 4
        assert m.settings.threads_per_worker.test_default == 2

    def test_reduction_radix(self) -> None:
        assert m.settings.reduction_radix.default == 2

    def test_resolve_timeout(self) -> None:
        assert m.settings.resolve_timeout.default == 0
        assert m.settings.resolve_timeout.test_default == 60

    def test_test_mode_values(self) -> None:
        assert m.settings.test() is True
        assert m.settings.num_workers() == 2
        assert m.settings.threads_per_worker() == 2
        assert m.settings.resolve_timeout() == 60

    def test_production_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PGARRAY_TEST")
        assert m.settings.test() is False
        assert m.settings.num_workers() == 1
        assert m.settings.threads_per_worker() == 4
        assert m.settings.resolve_timeout() == 0

    def test_debug_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PGARRAY_DEBUG", "submit, resolve,,")
        assert m.settings.debug() == ("submit", "resolve")
