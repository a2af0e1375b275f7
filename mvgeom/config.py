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

from dataclasses import dataclass, field
from typing import Union

from mvgeom.constants import TriangulationMode
from mvgeom.core.exceptions import UnsupportedAlgorithmError, ValueCheckError

__all__ = ["BundleAdjustmentConfig", "ConvergenceConfig", "EPnPConfig", "TriangulationConfig"]


@dataclass
class ConvergenceConfig:
    """Stopping criteria shared by every iterative optimizer.

    Args:
        ftol: relative decrease of the cost below which the optimization stops.
        gtol: infinity norm of the gradient below which the optimization stops.
        max_iterations: maximum number of accepted iterations.
    """

    ftol: float = 1e-8
    gtol: float = 1e-8
    max_iterations: int = 100

    def __post_init__(self) -> None:
        if self.ftol < 0 or self.gtol < 0:
            raise ValueCheckError(f"Tolerances must be non-negative. Got ftol={self.ftol}, gtol={self.gtol}.")
        if self.max_iterations < 0:
            raise ValueCheckError(f"max_iterations must be non-negative. Got {self.max_iterations}.")


@dataclass
class TriangulationConfig:
    """Triangulation settings.

    Args:
        mode: ``DLT``, ``GEOMETRIC`` (DLT followed by the reprojection error refinement) or ``ALGEBRAIC``
            (the same pipeline, N view projective only).
        convergence: the stopping criteria of the refinement.
    """

    mode: Union[TriangulationMode, str] = TriangulationMode.DLT
    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)

    def __post_init__(self) -> None:
        try:
            self.mode = TriangulationMode.get(self.mode)
        except (KeyError, ValueError) as err:
            raise UnsupportedAlgorithmError(f"Unknown triangulation mode: {self.mode!r}.") from err


@dataclass
class EPnPConfig:
    """Parameters of the EPnP solver.

    Args:
        num_iterations: Gauss-Newton steps polishing the control point weights. Zero disables it.
        magic_number: relative PCA spread under which the world points are treated as planar.
    """

    num_iterations: int = 10
    magic_number: float = 0.1

    def __post_init__(self) -> None:
        if self.num_iterations < 0:
            raise ValueCheckError(f"num_iterations must be non-negative. Got {self.num_iterations}.")
        if not 0.0 < self.magic_number < 1.0:
            raise ValueCheckError(f"magic_number must lie in (0, 1). Got {self.magic_number}.")


@dataclass
class BundleAdjustmentConfig:
    """Bundle adjustment settings.

    Args:
        convergence: the stopping criteria.
        initial_damping: the damping of the first iteration.
        damping_factor: the damping update factor.
        max_damping_retries: number of damping increases tried within one iteration.
    """

    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)
    initial_damping: float = 1e-3
    damping_factor: float = 10.0
    max_damping_retries: int = 10
