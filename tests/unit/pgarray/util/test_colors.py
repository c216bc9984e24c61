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

import colorama
import pytest
from pytest_mock import MockerFixture

import pgarray.util.colors as m
from pgarray.settings import settings

COLOR_FUNCS = (
    "cyan",
    "green",
    "red",
    "white",
    "yellow",
)

STYLE_FUNCS = (
    "bright",
    "dim",
)


def test_default_ENABLED() -> None:
    assert m.ENABLED is None
    assert m.enabled() is False


def test_follows_colors_setting() -> None:
    settings.colors = True
    assert m.enabled() is True
    assert m.red("x") == f"{colorama.Fore.RED}x{colorama.Style.RESET_ALL}"


def test_forced_off_beats_setting(mocker: MockerFixture) -> None:
    mocker.patch.object(m, "ENABLED", False)
    settings.colors = True
    assert m.red("x") == "x"


@pytest.mark.parametrize("color", COLOR_FUNCS)
def test_color_functions_ENABLED_True(
    mocker: MockerFixture, color: str
) -> None:
    mocker.patch.object(m, "ENABLED", True)

    cfunc = getattr(m, color)
    cprop = getattr(colorama.Fore, color.upper())

    assert cfunc("some text") == f"{cprop}some text{colorama.Style.RESET_ALL}"


@pytest.mark.parametrize("color", COLOR_FUNCS)
def test_color_functions_ENABLED_False(
    mocker: MockerFixture, color: str
) -> None:
    mocker.patch.object(m, "ENABLED", False)

    assert getattr(m, color)("some text") == "some text"


@pytest.mark.parametrize("style", STYLE_FUNCS)
def test_style_functions_ENABLED_True(
    mocker: MockerFixture, style: str
) -> None:
    mocker.patch.object(m, "ENABLED", True)

    sfunc = getattr(m, style)
    sprop = getattr(colorama.Style, style.upper())

    assert sfunc("some text") == f"{sprop}some text{colorama.Style.RESET_ALL}"
