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
"""Typed settings read from ``PGARRAY_*`` environment variables.

A ``PrioritizedSetting`` is looked up in this order:

1. a value set in code, e.g. ``settings.colors = True``
2. its environment variable, e.g. ``PGARRAY_DEBUG=submit,resolve``
3. the default given in its declaration

An ``EnvOnlySetting`` can only come from its environment variable. While
``PGARRAY_TEST=1`` its declared ``test_default`` replaces the regular
default.

A RuntimeError is raised when no value can be found.

"""
from __future__ import annotations

import os
from typing import Any, Callable, Generic, Optional, Type, TypeVar, Union

from typing_extensions import TypeAlias

__all__ = (
    "convert_bool",
    "convert_int",
    "convert_str_seq",
    "EnvOnlySetting",
    "PrioritizedSetting",
)

#: Environment variable switching env-only settings to their test defaults
TEST_ENV_VAR = "PGARRAY_TEST"


class _Unset:
    pass


T = TypeVar("T")

Unset: TypeAlias = Union[T, Type[_Unset]]


def convert_int(value: int | str) -> int:
    return int(value)


def convert_bool(value: bool | str) -> bool:
    """Map "1" to True and "0" to False. Booleans pass through."""
    if isinstance(value, bool):
        return value
    if value in ("0", "1"):
        return value == "1"
    raise ValueError(f'Cannot convert {value!r} to bool, use "0" or "1"')


def convert_str_seq(
    value: list[str] | tuple[str, ...] | str
) -> tuple[str, ...]:
    """Split a comma-separated string into a tuple, dropping empty items.

    Lists and tuples of strings are returned as a tuple.
    """
    if isinstance(value, (list, tuple)):
        return tuple(value)
    if not isinstance(value, str):
        raise ValueError(f"Cannot convert {value!r} to list value")
    return tuple(item.strip() for item in value.split(",") if item.strip())


_TYPE_NAMES: dict[Callable[[Any], Any], str] = {
    convert_int: "int",
    convert_bool: 'bool ("0" or "1")',
    convert_str_seq: "tuple[str, ...]",
}


def _test_mode() -> bool:
    return convert_bool(os.environ.get(TEST_ENV_VAR, "0"))


class _Setting(Generic[T]):
    def __init__(
        self,
        name: str,
        env_var: Optional[str],
        default: Unset[T],
        convert: Optional[Callable[[Any], T]],
        help: str,
    ) -> None:
        self.name = name
        self.env_var = env_var
        self.default = default
        self.help = help
        self._convert: Callable[[Any], Any] = convert or str

    @property
    def convert_type(self) -> str:
        return _TYPE_NAMES.get(
            self._convert, getattr(self._convert, "__name__", "str")
        )

    def _from_env(self) -> Unset[T]:
        if self.env_var is not None and self.env_var in os.environ:
            return self._convert(os.environ[self.env_var])
        return _Unset

    def _from_default(self) -> T:
        if self.default is _Unset:
            raise RuntimeError(
                f"No configured value found for setting {self.name!r}"
            )
        return self._convert(self.default)


class PrioritizedSetting(_Setting[T]):
    """A setting that code may override at runtime."""

    def __init__(
        self,
        name: str,
        env_var: Optional[str] = None,
        default: Unset[T] = _Unset,
        convert: Optional[Callable[[Any], T]] = None,
        help: str = "",
    ) -> None:
        super().__init__(name, env_var, default, convert, help)
        self._user_value: Unset[Any] = _Unset

    def __call__(self) -> T:
        if self._user_value is not _Unset:
            return self._convert(self._user_value)
        value = self._from_env()
        return self._from_default() if value is _Unset else value

    def __get__(
        self, instance: Any, owner: type[Any]
    ) -> PrioritizedSetting[T]:
        return self

    def __set__(self, instance: Any, value: Any) -> None:
        self.set_value(value)

    def set_value(self, value: Any) -> None:
        # Settings objects are singletons, so the descriptor holds the value
        self._user_value = value

    def unset_value(self) -> None:
        self._user_value = _Unset


class EnvOnlySetting(_Setting[T]):
    """A read-only setting taken from the environment."""

    def __init__(
        self,
        name: str,
        env_var: str,
        default: Unset[T] = _Unset,
        test_default: Unset[T] = _Unset,
        convert: Optional[Callable[[Any], T]] = None,
        help: str = "",
    ) -> None:
        super().__init__(name, env_var, default, convert, help)
        self.test_default = test_default

    def __call__(self) -> T:
        value = self._from_env()
        if value is not _Unset:
            return value
        if self.test_default is not _Unset and _test_mode():
            return self._convert(self.test_default)
        return self._from_default()

    def __get__(self, instance: Any, owner: type[Any]) -> EnvOnlySetting[T]:
        return self
