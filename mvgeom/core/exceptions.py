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
"""Exception and warning classes raised by the estimators, refiners and checks.

Every error accepts keyword details next to its message. They are kept in ``details`` and exposed as
attributes, so handlers can inspect the offending shape, type or value without parsing the message.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

__all__ = [
    "BaseError",
    "DegenerateInputError",
    "InsufficientDisambiguationSamples",
    "OptimizationDivergedError",
    "PartialConvergence",
    "ShapeError",
    "TypeCheckError",
    "UnsupportedAlgorithmError",
    "ValueCheckError",
]


class BaseError(Exception):
    """Root of every mvgeom error."""

    _fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, message: str = "", **details: Any) -> None:
        unknown = set(details) - set(self._fields)
        if unknown:
            raise TypeError(f"{type(self).__name__} got unexpected details: {sorted(unknown)}")
        super().__init__(message)
        self.details = details
        for name in self._fields:
            setattr(self, name, details.get(name, getattr(type(self), name, None)))


class ShapeError(BaseError):
    """A tensor does not have the expected shape.

    Details: ``actual_shape`` and ``expected_shape``.
    """

    _fields = ("actual_shape", "expected_shape")


class TypeCheckError(BaseError):
    """An argument does not have the expected type.

    Details: ``actual_type`` and ``expected_type``.
    """

    _fields = ("actual_type", "expected_type")


class ValueCheckError(BaseError):
    """A value falls outside what the operation accepts.

    Details: ``actual_value`` and ``expected_range`` as ``(min, max)``, ``None`` meaning unbounded.
    """

    _fields = ("actual_value", "expected_range")


class DegenerateInputError(ValueCheckError):
    """The input cannot determine a model.

    Too few samples, collinear or coplanar configurations where general position is needed, and
    rank-deficient linear systems end up here.
    """


class InsufficientDisambiguationSamples(ValueCheckError):
    """A multi-hypothesis estimator has no extra samples to pick a single model."""


class UnsupportedAlgorithmError(BaseError, ValueError):
    """An algorithm identifier or configuration combination has no implementation."""


class OptimizationDivergedError(BaseError, RuntimeError):
    """A non-linear optimizer found no finite cost within its damping retry budget.

    Details: ``iterations``, the accepted iterations before the failure, and ``cost``, the last finite cost.
    """

    _fields = ("iterations", "cost")
    iterations: int = 0
    cost: Optional[float] = None


class PartialConvergence(RuntimeWarning):
    """An optimizer stopped at its iteration cap before reaching its tolerances."""
