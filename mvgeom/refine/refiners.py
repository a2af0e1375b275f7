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

"""Non-linear refinement of estimated models by Levenberg-Marquardt on a minimal parametrisation."""

from typing import Optional, Tuple, Union

import torch

from mvgeom.config import ConvergenceConfig
from mvgeom.constants import ResidualType
from mvgeom.core import Module, Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_IS_TENSOR, MVG_CHECK_SHAPE
from mvgeom.core.exceptions import UnsupportedAlgorithmError
from mvgeom.geometry.conversions import axis_angle_to_rotation_matrix
from mvgeom.geometry.epipolar import decompose_essential_matrix, enforce_rank2, normalize_frobenius
from mvgeom.geometry.epipolar.numeric import cross_product_matrix
from mvgeom.optim import LevenbergMarquardt, OptimizationResult
from mvgeom.refine.residuals import (
    AlgebraicEpipolarResidual,
    EpipolarPointResidual,
    HomographySampsonResidual,
    HomographyTransferResidual,
    PointReprojectionResidual,
    PoseReprojectionResidual,
    ProjectivePointReprojectionResidual,
    ResidualModel,
    SampsonEpipolarResidual,
)

__all__ = [
    "EpipolarRefiner",
    "HomographyRefiner",
    "LeastSquaresRefiner",
    "PnPRefiner",
    "TriangulationRefinerEpipolar",
    "TriangulationRefinerMetric",
    "TriangulationRefinerProjective",
]


class LeastSquaresRefiner(Module):
    r"""Base class of the refiners.

    Subclasses map a model to a flat parameter vector with :meth:`to_params` and back with
    :meth:`from_params`. The optimization runs in double precision and the refined model is returned in
    the dtype of the initial one.

    Args:
        residual_model: the residual minimised over the data.
        config: the stopping criteria of the optimizer.
        initial_damping: the damping of the first iteration.
        damping_factor: the damping update factor.
        max_damping_retries: number of damping increases tried within one iteration.
    """

    def __init__(
        self,
        residual_model: ResidualModel,
        config: Optional[ConvergenceConfig] = None,
        initial_damping: float = 1e-3,
        damping_factor: float = 10.0,
        max_damping_retries: int = 10,
    ) -> None:
        super().__init__()
        self.residual_model = residual_model
        self.optimizer = LevenbergMarquardt(config, initial_damping, damping_factor, max_damping_retries)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(residual_model={self.residual_model}, optimizer={self.optimizer})"

    def to_params(self, initial: Tensor) -> Tensor:
        raise NotImplementedError

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        raise NotImplementedError

    def finalize(self, model: Tensor, initial: Tensor) -> Tensor:
        return model

    def prepare_data(self, *data: Tensor) -> Tuple[Tensor, ...]:
        return data

    def forward(self, initial: Tensor, *data: Tensor) -> Tuple[Tensor, OptimizationResult]:
        r"""Refine ``initial`` over the data.

        Args:
            initial: the model to refine.
            data: the data of the residual model.

        Returns:
            the refined model and the optimization result.

        Raises:
            OptimizationDivergedError: when no finite cost can be reached from the initial model.
        """
        MVG_CHECK_IS_TENSOR(initial)
        initial64 = initial.to(torch.float64)
        data64 = tuple(d.to(torch.float64) for d in self.prepare_data(*data))

        def residual_fn(params: Tensor) -> Tensor:
            return self.residual_model(self.from_params(params, initial64), *data64)

        result = self.optimizer.minimize(residual_fn, self.to_params(initial64))
        model = self.finalize(self.from_params(result.params, initial64), initial64)
        return model.to(initial.dtype), result


def _tangent_basis(t: Tensor) -> Tuple[Tensor, Tensor]:
    """Return two unit vectors orthogonal to ``t`` and to each other."""
    t = t / t.norm()
    axis = torch.zeros_like(t)
    axis[int(t.abs().argmin())] = 1.0
    b1 = torch.linalg.cross(t, axis, dim=-1)
    b1 = b1 / b1.norm()
    return b1, torch.linalg.cross(t, b1, dim=-1)


class HomographyRefiner(LeastSquaresRefiner):
    r"""Refine a homography :math:`(3, 3)` over correspondences.

    The eight entries of :math:`H / H_{33}` are optimised.

    Args:
        config: the stopping criteria of the optimizer.
        residual: ``SAMPSON`` for the first order geometric error, ``SIMPLE`` for the transfer error.

    Example:
        >>> points1 = torch.rand(10, 2, dtype=torch.float64)
        >>> H = torch.eye(3, dtype=torch.float64)
        >>> refined, result = HomographyRefiner()(H, points1, points1)
        >>> result.cost < 1e-12
        True
    """

    def __init__(
        self, config: Optional[ConvergenceConfig] = None, residual: Union[ResidualType, str] = ResidualType.SAMPSON
    ) -> None:
        residual = ResidualType.get(residual)
        model = HomographySampsonResidual() if residual == ResidualType.SAMPSON else HomographyTransferResidual()
        super().__init__(model, config)

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(initial, ["3", "3"])
        return (initial / initial[2, 2]).reshape(-1)[:8]

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        return torch.cat([params, torch.ones_like(params[:1])]).reshape(3, 3)


class EpipolarRefiner(LeastSquaresRefiner):
    r"""Refine a fundamental or an essential matrix over correspondences.

    A fundamental matrix is refined over its nine entries and projected back to rank two. An essential
    matrix is refined on its five dimensional manifold: the initial matrix is factored as
    :math:`[t]_\times R` and updated as :math:`R \leftarrow \exp(\omega) R` and
    :math:`t \leftarrow (t + a b_1 + c b_2) / \| \cdot \|` with :math:`b_1, b_2 \perp t`.

    Args:
        config: the stopping criteria of the optimizer.
        residual: ``SAMPSON`` for the first order geometric error, ``SIMPLE`` for the algebraic error.
        essential: whether the refined matrix is essential.
    """

    def __init__(
        self,
        config: Optional[ConvergenceConfig] = None,
        residual: Union[ResidualType, str] = ResidualType.SAMPSON,
        essential: bool = False,
    ) -> None:
        residual = ResidualType.get(residual)
        model = SampsonEpipolarResidual() if residual == ResidualType.SAMPSON else AlgebraicEpipolarResidual()
        super().__init__(model, config)
        self.essential = essential

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(residual_model={self.residual_model}, essential={self.essential})"

    def _factor(self, initial: Tensor) -> Tuple[Tensor, Tensor, Tensor, Tensor]:
        R, _, t = decompose_essential_matrix(initial)
        t = t[:, 0]
        b1, b2 = _tangent_basis(t)
        return R, t, b1, b2

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(initial, ["3", "3"])
        if self.essential:
            return torch.zeros(5, dtype=initial.dtype, device=initial.device)
        return normalize_frobenius(initial).reshape(-1)

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        if not self.essential:
            return params.reshape(3, 3)
        R0, t0, b1, b2 = self._factor(initial)
        R = axis_angle_to_rotation_matrix(params[:3]) @ R0
        t = t0 + params[3] * b1 + params[4] * b2
        return cross_product_matrix(t / t.norm()) @ R

    def finalize(self, model: Tensor, initial: Tensor) -> Tensor:
        if not self.essential:
            model = enforce_rank2(model)
        model = normalize_frobenius(model)
        # keep the sign of the initial matrix
        return torch.where((model * initial).sum() < 0, -model, model)


class PnPRefiner(LeastSquaresRefiner):
    r"""Refine a world to camera pose :math:`(3, 4)` by minimising the reprojection error.

    The rotation is updated as :math:`R \leftarrow \exp(\omega) R` with the Rodrigues formula and the
    translation additively. The data are the world points :math:`(N, 3)` and their normalized image
    coordinates :math:`(N, 2)`.

    Args:
        config: the stopping criteria of the optimizer.
    """

    def __init__(self, config: Optional[ConvergenceConfig] = None) -> None:
        super().__init__(PoseReprojectionResidual(), config)

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(initial, ["3", "4"])
        return torch.zeros(6, dtype=initial.dtype, device=initial.device)

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        R = axis_angle_to_rotation_matrix(params[:3]) @ initial[:, :3]
        t = initial[:, 3] + params[3:]
        return torch.cat([R, t[:, None]], dim=-1)


def _as_nview(data: Tuple[Tensor, ...], metric: bool) -> Tuple[Tensor, Tensor]:
    """Turn two view triangulation data into ``(observations (V, 2), cameras (V, 3, 4))``."""
    if len(data) == 2:
        return data[0], data[1]
    if metric and len(data) == 3:
        obs1, obs2, pose = data
        first = torch.eye(3, 4, dtype=pose.dtype, device=pose.device)
        return torch.stack([obs1, obs2]), torch.stack([first, pose])
    if not metric and len(data) == 4:
        obs1, obs2, P1, P2 = data
        return torch.stack([obs1, obs2]), torch.stack([P1, P2])
    raise UnsupportedAlgorithmError(f"Unexpected number of triangulation inputs: {len(data)}.")


class TriangulationRefinerMetric(LeastSquaresRefiner):
    r"""Refine a 3d point :math:`(3,)` by minimising its reprojection error in calibrated views.

    The data are either the normalized observations :math:`(V, 2)` and the world to camera poses
    :math:`(V, 3, 4)`, or the two observations :math:`(2,)` and the pose from view 1 to view 2.

    Args:
        config: the stopping criteria of the optimizer.
    """

    def __init__(self, config: Optional[ConvergenceConfig] = None) -> None:
        super().__init__(PointReprojectionResidual(), config)

    def prepare_data(self, *data: Tensor) -> Tuple[Tensor, ...]:
        return _as_nview(data, metric=True)

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK(initial.shape == (3,), f"Expected a point with shape (3,). Got {tuple(initial.shape)}.")
        return initial

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        return params


class TriangulationRefinerProjective(LeastSquaresRefiner):
    r"""Refine a homogeneous point :math:`(4,)` by minimising its reprojection error in uncalibrated views.

    The data are either the observations :math:`(V, 2)` and the camera matrices :math:`(V, 3, 4)`, or the
    two observations :math:`(2,)` followed by the two camera matrices. The refined point has unit norm
    and a non-negative last coordinate.

    Args:
        config: the stopping criteria of the optimizer.
    """

    def __init__(self, config: Optional[ConvergenceConfig] = None) -> None:
        super().__init__(ProjectivePointReprojectionResidual(), config)

    def prepare_data(self, *data: Tensor) -> Tuple[Tensor, ...]:
        return _as_nview(data, metric=False)

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK(initial.shape == (4,), f"Expected a point with shape (4,). Got {tuple(initial.shape)}.")
        return initial / initial.norm()

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        return params

    def finalize(self, model: Tensor, initial: Tensor) -> Tensor:
        model = model / model.norm()
        return torch.where(model[3] < 0, -model, model)


class TriangulationRefinerEpipolar(LeastSquaresRefiner):
    r"""Refine a 3d point :math:`(3,)` by minimising its Sampson error under the essential matrix of each view.

    The data are the normalized observations :math:`(V, 2)` and the essential matrices :math:`(V, 3, 3)`
    taking the frame of the point to each view. The residual only constrains the direction of the point,
    so its depth is kept and the normalized coordinates :math:`(X / Z, Y / Z)` are optimised.

    Args:
        config: the stopping criteria of the optimizer.
    """

    def __init__(self, config: Optional[ConvergenceConfig] = None) -> None:
        super().__init__(EpipolarPointResidual(), config)

    def to_params(self, initial: Tensor) -> Tensor:
        MVG_CHECK(initial.shape == (3,), f"Expected a point with shape (3,). Got {tuple(initial.shape)}.")
        MVG_CHECK(bool(initial[2] != 0), "The point must have a non-zero depth.")
        return initial[:2] / initial[2]

    def from_params(self, params: Tensor, initial: Tensor) -> Tensor:
        return torch.cat([params, torch.ones_like(params[:1])]) * initial[2]
