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
"""Helper functions for simple text UI output.

Used for debug lines and for the slot/failure reports of block directories.

"""
from __future__ import annotations

from typing import Any, Iterable

from .colors import bright, cyan, dim, green, red, white, yellow

__all__ = (
    "UI_WIDTH",
    "debug",
    "error",
    "key",
    "kvtable",
    "passed",
    "rule",
    "section",
    "value",
)


#: Width for terminal ouput headers and footers.
UI_WIDTH = 80


def debug(category: str, text: str) -> str:
    """Format a debug line tagged with its category.

    Parameters
    ----------
    category : str
        The debug category the line belongs to

    text : str
        The text to format

    Returns
    -------
        str

    """
    return f"{dim(white('[pgarray]'))} {cyan(category)}: {text}"


def error(text: str) -> str:
    """Format text as an error.

    Parameters
    ----------
    text : str
        The text to format

    Returns
    -------
        str

    """
    return red(f"ERROR: {text}")


def passed(text: str) -> str:
    """Format text as a success marker."""
    return green(text)


def key(text: str) -> str:
    """Format a key for a key-value table.

    Parameters
    ----------
    text : str
        The key to format

    Returns
    -------
        str

    """
    return dim(green(text))


def value(text: str) -> str:
    """Format a value for a key-value table.

    Parameters
    ----------
    text : str
        The value to format

    Returns
    -------
        str

    """
    return yellow(text)


def kvtable(
    items: dict[str, Any],
    *,
    delim: str = " : ",
    align: bool = True,
    keys: Iterable[str] | None = None,
) -> str:
    """Format a dictionay as a table of key-value pairs.

    Parameters
    ----------
    items : dict[str, Any]
        The dictionary of items to format

    delim : str, optional
        A delimiter to display between keys and values (default: " : ")

    align : bool, optional
        Whether to align delimiters to the longest key length (default: True)

    keys : Iterable[str] or None, optional
        If not None, only the specified subset of keys is included in the
        table output (default: None)

    Returns
    -------
        str

    """
    if not items:
        return ""

    # take len on the color-formatted version
    N = max(len(key(k)) for k in items) if align else 0

    keys = items.keys() if keys is None else keys

    return "\n".join(
        f"{key(k): <{N}}{delim}{value(str(items[k]))}" for k in keys
    )


def rule(
    text: str | None = None,
    *,
    pad: int = 0,
    char: str = "-",
    N: int = UI_WIDTH,
) -> str:
    """Format a horizontal rule, optionally with text

    Parameters
    ----------
    text : str or None, optional
        If not None, display this text inline in the rule (default: None)

    pad : int, optional
        An amount of padding to put in front of the rule

    char: str, optional
        A character to use for the rule (default: "-")

    N : int, optional
        Character width for the rule (default: 80)

    Returns
    -------
        str

    """
    width = N - pad
    if text is None:
        return cyan(f"{char*width: >{N}}")
    return cyan(" " * pad + char * 3 + f"{f' {text} ' :{char}<{width-3}}")


def section(text: str) -> str:
    """Format text as a section header

    Parameters
    ----------
    text : str
        The text to format

    Returns
    -------
        str

    """
    return bright(white(text))

