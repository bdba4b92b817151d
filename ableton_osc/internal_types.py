#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Type hints used internally by this package.
"""

from typing import (
    Dict, List, Optional, Set, Tuple, Union, Any, Callable, Awaitable,
    Iterable, Iterator, Sequence, Mapping, MutableMapping,
    AsyncIterable, AsyncIterator, AsyncContextManager,
  )

from types import TracebackType

from typing_extensions import Self

HostAndPort = Tuple[str, int]
"""A socket address; e.g., ("127.0.0.1", 11000)."""

OscArg = Union[int, float, str, bool]
"""A single argument of an OSC message."""

Jsonable = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
JsonableDict = Dict[str, Jsonable]
