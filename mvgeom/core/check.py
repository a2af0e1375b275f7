# LICENSE HEADER MANAGED BY add-license-header
#
# Copyright 2018 Kornia Team
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
"""Input guards used across the estimators.

The shape and type guards can be switched off with :func:`disable_checks`, ``python -O`` or the
environment variable ``MVGEOM_CHECKS=0``. A disabled guard always reports success.
"""

from __future__ import annotations

import functools
import os
from typing import Any, Callable, Optional, Sequence, TypeVar, cast

import torch
from typing_extensions import TypeGuard

from mvgeom.core.exceptions import BaseError, DegenerateInputError, ShapeError, TypeCheckError

__all__ = [
    "MVG_CHECK",
    "MVG_CHECK_IS_TENSOR",
    "MVG_CHECK_SAME_SHAPE",
    "MVG_CHECK_SAMPLE_COUNT",
    "MVG_CHECK_SHAPE",
    "MVG_CHECK_TYPE",
    "are_checks_enabled",
    "disable_checks",
    "enable_checks",
]


def _enabled_from_env() -> bool:
    value = os.getenv("MVGEOM_CHECKS")
    if value is None:
        return __debug__
    return value.lower() in ("1", "true", "yes", "on")


_MVG_CHECKS_ENABLED: bool = _enabled_from_env()


def are_checks_enabled() -> bool:
    """Return whether the shape and type guards are active.

    Example:
        >>> are_checks_enabled()
        True
    """
    return _MVG_CHECKS_ENABLED


def disable_checks() -> None:
    """Switch off the shape and type guards.

    :func:`MVG_CHECK_SAMPLE_COUNT` guards the solvers themselves and stays active.

    Example:
        >>> disable_checks()
        >>> are_checks_enabled()
        False
        >>> enable_checks()
    """
    global _MVG_CHECKS_ENABLED  # noqa: PLW0603
    _MVG_CHECKS_ENABLED = False


def enable_checks() -> None:
    """Switch the shape and type guards back on."""
    global _MVG_CHECKS_ENABLED  # noqa: PLW0603
    _MVG_CHECKS_ENABLED = True


F = TypeVar("F", bound=Callable[..., Any])


def _skippable(guard: F) -> F:
    @functools.wraps(guard)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not _MVG_CHECKS_ENABLED:
            return True
        return guard(*args, **kwargs)

    return cast(F, wrapper)


def _fail(error: type[BaseError], message: str, msg: Optional[str], raises: bool, **details: Any) -> bool:
    if not raises:
        return False
    if msg is not None:
        message = f"{message}\n  {msg}"
    raise error(message, **details)


def _shape_mismatch(actual: Sequence[int], pattern: list[str]) -> Optional[str]:
    """Describe how ``actual`` violates ``pattern``, or return ``None`` when it matches.

    Symbolic entries match any size. A leading or trailing ``"*"`` matches any number of dimensions.
    """
    if pattern[0] == "*":
        pattern = pattern[1:]
        actual = actual[len(actual) - len(pattern) :] if len(actual) >= len(pattern) else actual
    elif pattern[-1] == "*":
        pattern = pattern[:-1]
        actual = actual[: len(pattern)]
    if len(actual) != len(pattern):
        return f"expected {len(pattern)} dimensions, got {len(actual)}"
    for i, (size, expected) in enumerate(zip(actual, pattern)):
        if expected.isnumeric() and size != int(expected):
            return f"dimension {i} should be {expected}, got {size}"
    return None


@_skippable
def MVG_CHECK_SHAPE(x: torch.Tensor, shape: list[str], msg: Optional[str] = None, raises: bool = True) -> bool:
    """Check a tensor against a shape pattern such as ``["B", "N", "2"]`` or ``["*", "3", "3"]``.

    Args:
        x: the tensor to evaluate.
        shape: the expected shape. Numeric entries must match exactly, symbolic ones match any size
          and a leading or trailing ``"*"`` matches any number of dimensions.
        msg: optional text appended to the error message.
        raises: raise on failure instead of returning ``False``.

    Raises:
        ShapeError: if the shape does not match and ``raises`` is set.

    Example:
        >>> MVG_CHECK_SHAPE(torch.rand(2, 8, 2), ["B", "N", "2"])
        True
    """
    problem = _shape_mismatch(tuple(x.shape), shape)
    if problem is None:
        return True
    message = f"Shape mismatch: {problem}. Expected {shape}, got {list(x.shape)}."
    return _fail(ShapeError, message, msg, raises, actual_shape=list(x.shape), expected_shape=shape)


@_skippable
def MVG_CHECK(condition: bool, msg: Optional[str] = None, raises: bool = True) -> bool:
    """Check an arbitrary condition.

    Raises:
        BaseError: if the condition does not hold and ``raises`` is set.

    Example:
        >>> MVG_CHECK(torch.rand(2, 3, 3).shape[-2:] == (3, 3), "Invalid homography")
        True
    """
    if condition:
        return True
    return _fail(BaseError, msg or "Validation condition failed", None, raises)


T = TypeVar("T", bound=type)


@_skippable
def MVG_CHECK_TYPE(x: object, typ: T | tuple[T, ...], msg: Optional[str] = None, raises: bool = True) -> TypeGuard[T]:
    """Check that ``x`` is an instance of ``typ``.

    Raises:
        TypeCheckError: if it is not and ``raises`` is set.

    Example:
        >>> MVG_CHECK_TYPE("foo", str)
        True
    """
    if isinstance(x, typ):
        return True
    names = " | ".join(t.__name__ for t in typ) if isinstance(typ, tuple) else typ.__name__
    message = f"Type mismatch: expected {names}, got {type(x).__name__}."
    return _fail(TypeCheckError, message, msg, raises, actual_type=type(x), expected_type=typ)


def MVG_CHECK_IS_TENSOR(x: object, msg: Optional[str] = None, raises: bool = True) -> TypeGuard[torch.Tensor]:
    """Check that ``x`` is a tensor.

    Raises:
        TypeCheckError: if it is not and ``raises`` is set.
    """
    return MVG_CHECK_TYPE(x, torch.Tensor, msg, raises)


@_skippable
def MVG_CHECK_SAME_SHAPE(x: torch.Tensor, y: torch.Tensor, raises: bool = True) -> bool:
    """Check that two tensors have the same shape.

    Raises:
        ShapeError: if they differ and ``raises`` is set.
    """
    if x.shape == y.shape:
        return True
    message = f"Not same shape for tensors. Got: {tuple(x.shape)} and {tuple(y.shape)}"
    return _fail(ShapeError, message, None, raises, actual_shape=tuple(y.shape), expected_shape=tuple(x.shape))


def MVG_CHECK_SAMPLE_COUNT(
    points: torch.Tensor, minimum: int, exact: bool = False, dim: int = -2, what: str = "points"
) -> bool:
    """Check that a solver received enough samples.

    This guard is never disabled.

    Args:
        points: the sample tensor.
        minimum: minimum, or exact, number of samples.
        exact: whether the count must equal ``minimum``.
        dim: the dimension holding the samples.
        what: name of the samples in the error message.

    Raises:
        DegenerateInputError: if the sample count is wrong.

    Example:
        >>> MVG_CHECK_SAMPLE_COUNT(torch.rand(1, 8, 2), 8)
        True
    """
    count = points.shape[dim]
    if count == minimum or (count > minimum and not exact):
        return True
    qualifier = "exactly" if exact else "at least"
    raise DegenerateInputError(
        f"Expected {qualifier} {minimum} {what}, got {count}.",
        actual_value=count,
        expected_range=(minimum, minimum if exact else None),
    )
