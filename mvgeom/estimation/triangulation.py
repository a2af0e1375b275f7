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

"""Single point triangulation objects in calibrated (metric) and uncalibrated (projective) settings."""

import torch

from mvgeom.core import Module, Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SHAPE
from mvgeom.geometry.epipolar import triangulate_points_nview

__all__ = [
    "Triangulate2ViewsMetricDLT",
    "Triangulate2ViewsProjectiveDLT",
    "TriangulateNViewsMetricDLT",
    "TriangulateNViewsProjectiveDLT",
]


def _triangulate(observations: Tensor, cameras: Tensor, homogeneous: bool) -> Tensor:
    MVG_CHECK_SHAPE(observations, ["V", "2"])
    MVG_CHECK_SHAPE(cameras, ["V", "3", "4"])
    MVG_CHECK(observations.shape[0] == cameras.shape[0], "Expected one observation per view.")
    return triangulate_points_nview(cameras, observations[:, None], homogeneous=homogeneous)[0]


class TriangulateNViewsMetricDLT(Module):
    r"""Triangulate a 3d point from its normalized observations in :math:`V \geq 2` calibrated views.

    ``forward(observations (V, 2), poses (V, 3, 4)) -> (3,)`` with world to camera poses.

    Example:
        >>> poses = torch.eye(3, 4).repeat(2, 1, 1)
        >>> poses[1, 0, 3] = -1.0
        >>> observations = torch.tensor([[0.0, 0.0], [-0.2, 0.0]])
        >>> point = TriangulateNViewsMetricDLT()(observations, poses)
        >>> torch.allclose(point, torch.tensor([0.0, 0.0, 5.0]), atol=1e-3)
        True
    """

    min_samples = 2

    def forward(self, observations: Tensor, poses: Tensor) -> Tensor:
        return _triangulate(observations, poses, homogeneous=False)


class TriangulateNViewsProjectiveDLT(Module):
    r"""Triangulate a homogeneous point from its observations in :math:`V \geq 2` uncalibrated views.

    ``forward(observations (V, 2), cameras (V, 3, 4)) -> (4,)``. The point has unit norm and a
    non-negative last coordinate.
    """

    min_samples = 2

    def forward(self, observations: Tensor, cameras: Tensor) -> Tensor:
        return _triangulate(observations, cameras, homogeneous=True)


class Triangulate2ViewsMetricDLT(Module):
    r"""Triangulate a 3d point from two calibrated views.

    ``forward(obs1 (2,), obs2 (2,), pose_1to2 (3, 4)) -> (3,)``. The point is expressed in the frame of
    the first view.
    """

    min_samples = 2

    def forward(self, obs1: Tensor, obs2: Tensor, pose_1to2: Tensor) -> Tensor:
        MVG_CHECK_SHAPE(pose_1to2, ["3", "4"])
        first = torch.eye(3, 4, dtype=pose_1to2.dtype, device=pose_1to2.device)
        return _triangulate(torch.stack([obs1, obs2]), torch.stack([first, pose_1to2]), homogeneous=False)


class Triangulate2ViewsProjectiveDLT(Module):
    r"""Triangulate a homogeneous point from two uncalibrated views.

    ``forward(obs1 (2,), obs2 (2,), P1 (3, 4), P2 (3, 4)) -> (4,)``.
    """

    min_samples = 2

    def forward(self, obs1: Tensor, obs2: Tensor, P1: Tensor, P2: Tensor) -> Tensor:
        return _triangulate(torch.stack([obs1, obs2]), torch.stack([P1, P2]), homogeneous=True)
