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
from enum import Enum, EnumMeta
from typing import Any, Type, TypeVar, Union

__all__ = ["EpipolarAlgorithm", "PnPAlgorithm", "ResidualType", "TKEnum", "TriangulationMode"]


T = TypeVar("T", bound=Enum)
TKEnum = Union[str, int, T]


class _LookupMeta(EnumMeta):
    def __contains__(self, other: Any) -> bool:  # type: ignore[override]
        if isinstance(other, (str, int)) and not isinstance(other, Enum):
            try:
                self.get(other)  # type: ignore[attr-defined]
            except (KeyError, ValueError):
                return False
            return True
        return super().__contains__(other)

    def __repr__(self) -> str:
        return " | ".join(f"{self.__name__}.{member.name}" for member in self)


class _Lookup(Enum, metaclass=_LookupMeta):
    """Enumeration that can be resolved from a member, its case-insensitive name or its value."""

    @classmethod
    def get(cls: Type[T], value: TKEnum[T]) -> T:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls[value.upper()]
        if isinstance(value, int):
            return cls(value)
        raise TypeError(f"{cls.__name__}.get expects a str, an int or a {cls.__name__}. Got {type(value)}")


class EpipolarAlgorithm(_Lookup):
    """Linear solvers for fundamental and essential matrices."""

    LINEAR_8 = 0
    LINEAR_7 = 1
    NISTER_5 = 2


class PnPAlgorithm(_Lookup):
    """Perspective-n-Point solvers."""

    P3P_GRUNERT = 0
    P3P_FINSTERWALDER = 1
    EPNP = 2
    IPPE = 3


class TriangulationMode(_Lookup):
    """How a 3D point is recovered from its observations."""

    DLT = 0
    GEOMETRIC = 1
    ALGEBRAIC = 2


class ResidualType(_Lookup):
    """Error minimised by the epipolar and homography refiners."""

    SAMPSON = 0
    SIMPLE = 1
