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

"""Residual models minimised by the refiners and scored by the hypothesis disambiguator.

A residual model is a stateless callable ``residual(model, *data) -> (N, m)`` whose squared norm per row
is the error of one sample. Only out-of-place tensor operations are used so that the models can be
differentiated with ``torch.func``.
"""

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous
from mvgeom.geometry.epipolar import epipolar_lines, project_points
from mvgeom.geometry.epipolar._metrics import homography_sampson_terms
from mvgeom.geometry.linalg import transform_points
from mvgeom.geometry.pnp import transform_to_camera

__all__ = [
    "AlgebraicEpipolarResidual",
    "EpipolarPointResidual",
    "HomographySampsonResidual",
    "HomographyTransferResidual",
    "PointReprojectionResidual",
    "PoseReprojectionResidual",
    "ProjectivePointReprojectionResidual",
    "ResidualModel",
    "SampsonEpipolarResidual",
]


class ResidualModel:
    """Base class of the residual models.

    Attributes:
        num_residuals: number of residuals contributed by every sample.
    """

    num_residuals: int = 1

    def __call__(self, model: Tensor, *data: Tensor) -> Tensor:
        return self.forward(model, *data)

    def forward(self, model: Tensor, *data: Tensor) -> Tensor:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SampsonEpipolarResidual(ResidualModel):
    r"""First order geometric error of :math:`x_2^T F x_1 = 0`.

    The squared residual equals :func:`~mvgeom.geometry.epipolar.sampson_epipolar_distance`.

    Args:
        eps: small constant added to the gradient norm.
    """

    def __init__(self, eps: float = 1e-12) -> None:
        self.eps = eps

    def forward(self, model: Tensor, points1: Tensor, points2: Tensor) -> Tensor:
        line1_in_2, line2_in_1, algebraic = epipolar_lines(points1, points2, model)
        denominator = line1_in_2[..., :2].pow(2).sum(-1) + line2_in_1[..., :2].pow(2).sum(-1)
        return (algebraic / (denominator + self.eps).sqrt())[..., None]


class EpipolarPointResidual(ResidualModel):
    r"""Sampson error of a 3d point against its observations under the essential matrix of every view.

    The point :math:`(3,)` lives in the reference frame. Its normalized projection :math:`(X / Z, Y / Z)`
    pairs with each observation :math:`(V, 2)` through the essential matrix :math:`(V, 3, 3)` taking the
    reference frame to that view.

    Args:
        eps: small constant added to the gradient norm.
    """

    def __init__(self, eps: float = 1e-12) -> None:
        self.sampson = SampsonEpipolarResidual(eps)

    def forward(self, model: Tensor, observations: Tensor, essentials: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(essentials, ["V", "3", "3"])
        projection = (model / model[2]).expand(observations.shape[0], 3)
        return self.sampson(essentials, projection[:, None], observations[:, None])[:, 0]


class AlgebraicEpipolarResidual(ResidualModel):
    r"""The algebraic error :math:`x_2^T F x_1`."""

    def forward(self, model: Tensor, points1: Tensor, points2: Tensor) -> Tensor:
        return epipolar_lines(points1, points2, model)[2][..., None]


class HomographyTransferResidual(ResidualModel):
    r"""Difference between :math:`H x_1` and :math:`x_2` in the second image."""

    num_residuals = 2

    def forward(self, model: Tensor, points1: Tensor, points2: Tensor) -> Tensor:
        return transform_points(model, points1) - points2


class HomographySampsonResidual(ResidualModel):
    r"""Whitened algebraic error of :math:`x_2 \times H x_1 = 0`.

    The two algebraic errors are whitened with the Cholesky factor of :math:`J J^T`, so that the squared
    norm of the residual is :func:`~mvgeom.geometry.epipolar.homography_sampson_error`.
    """

    num_residuals = 2

    def __init__(self, eps: float = 1e-12) -> None:
        self.eps = eps

    def forward(self, model: Tensor, points1: Tensor, points2: Tensor) -> Tensor:
        err, a, b, c = homography_sampson_terms(points1, points2, model)
        l11 = (a + self.eps).sqrt()
        l21 = b / l11
        l22 = (c - l21 * l21).clamp_min(0.0).add(self.eps).sqrt()
        r1 = err[..., 0] / l11
        r2 = (err[..., 1] - l21 * r1) / l22
        return torch.stack([r1, r2], dim=-1)


class PoseReprojectionResidual(ResidualModel):
    r"""Reprojection error of 3d-2d correspondences under a world to camera pose :math:`(3, 4)`.

    The observations are normalized image coordinates.
    """

    num_residuals = 2

    def forward(self, model: Tensor, world_points: Tensor, img_points: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(model, ["*", "3", "4"])
        return convert_points_from_homogeneous(transform_to_camera(model, world_points)) - img_points


class PointReprojectionResidual(ResidualModel):
    r"""Reprojection error of a 3d point :math:`(3,)` seen by calibrated views.

    The data are the normalized observations :math:`(V, 2)` and the world to camera poses :math:`(V, 3, 4)`.
    """

    num_residuals = 2

    def forward(self, model: Tensor, observations: Tensor, poses: Tensor) -> Tensor:
        return project_points(poses, model.expand(poses.shape[0], 1, 3))[:, 0] - observations


class ProjectivePointReprojectionResidual(ResidualModel):
    r"""Reprojection error of a homogeneous point :math:`(4,)` seen by uncalibrated cameras :math:`(V, 3, 4)`."""

    num_residuals = 2

    def forward(self, model: Tensor, observations: Tensor, cameras: Tensor) -> Tensor:
        return project_points(cameras, model.expand(cameras.shape[0], 1, 4))[:, 0] - observations
