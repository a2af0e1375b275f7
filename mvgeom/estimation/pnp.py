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

from typing import List, Optional

from mvgeom.config import EPnPConfig
from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_IS_TENSOR, MVG_CHECK_SHAPE
from mvgeom.estimation.base import Estimator
from mvgeom.geometry.pnp import (
    solve_p3p_finsterwalder,
    solve_p3p_grunert,
    solve_pnp_epnp,
    solve_pnp_ippe,
    solve_pose_from_pair,
)

__all__ = ["EPnP", "IPPE", "P3PFinsterwalder", "P3PGrunert", "PoseFromPairLinear6"]


class P3PGrunert(Estimator):
    r"""Up to four world to camera poses from three 3d-2d correspondences with Grunert's method.

    The image points are normalized image coordinates.
    """

    min_samples = 3
    max_hypotheses = 4

    def forward(self, world_points: Tensor, img_points: Tensor) -> List[Tensor]:
        self._check_pairs(world_points, img_points, ("3", "2"))
        poses, mask = solve_p3p_grunert(world_points[None], img_points[None])
        return self._unbatch(poses, mask)


class P3PFinsterwalder(Estimator):
    r"""Up to four world to camera poses from three 3d-2d correspondences with Finsterwalder's method."""

    min_samples = 3
    max_hypotheses = 4

    def forward(self, world_points: Tensor, img_points: Tensor) -> List[Tensor]:
        self._check_pairs(world_points, img_points, ("3", "2"))
        poses, mask = solve_p3p_finsterwalder(world_points[None], img_points[None])
        return self._unbatch(poses, mask)


class EPnP(Estimator):
    r"""World to camera pose from :math:`N \geq 4` correspondences with EPnP.

    Args:
        num_iterations: Gauss-Newton steps polishing the control point weights.
        magic_number: relative spread under which the world points are treated as planar.
        config: alternative way of passing both parameters. Takes precedence when given.
    """

    min_samples = 4
    max_hypotheses = 1

    def __init__(
        self, num_iterations: int = 10, magic_number: float = 0.1, config: Optional[EPnPConfig] = None
    ) -> None:
        super().__init__()
        config = config if config is not None else EPnPConfig(num_iterations, magic_number)
        self.num_iterations = config.num_iterations
        self.magic_number = config.magic_number

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(num_iterations={self.num_iterations}, magic_number={self.magic_number})"

    def forward(self, world_points: Tensor, img_points: Tensor) -> List[Tensor]:
        self._check_pairs(world_points, img_points, ("3", "2"))
        return [solve_pnp_epnp(world_points[None], img_points[None], self.num_iterations, self.magic_number)[0]]


class IPPE(Estimator):
    r"""World to camera pose from :math:`N \geq 4` coplanar correspondences.

    Of the two poses found by :func:`~mvgeom.geometry.pnp.solve_pnp_ippe` the one with the lowest
    reprojection error is returned.
    """

    min_samples = 4
    max_hypotheses = 1

    def forward(self, world_points: Tensor, img_points: Tensor) -> List[Tensor]:
        self._check_pairs(world_points, img_points, ("3", "2"))
        poses, _ = solve_pnp_ippe(world_points[None], img_points[None])
        return [poses[0, 0]]


class PoseFromPairLinear6(Estimator):
    r"""Motion from view 1 to view 2 from :math:`N \geq 6` points known in the frame of view 1.

    ``forward(points2 (N, 2), points3d (N, 3|4)) -> [(3, 4)]`` with the observations in normalized image
    coordinates of the second view and 3d or homogeneous points.
    See :func:`~mvgeom.geometry.pnp.solve_pose_from_pair`.
    """

    min_samples = 6
    max_hypotheses = 1

    def forward(self, points2: Tensor, points3d: Tensor) -> List[Tensor]:
        MVG_CHECK_IS_TENSOR(points2)
        MVG_CHECK_IS_TENSOR(points3d)
        MVG_CHECK_SHAPE(points2, ["N", "2"])
        MVG_CHECK(points3d.dim() == 2 and points3d.shape[-1] in (3, 4), f"Expected (N, 3|4). Got {points3d.shape}.")
        return [solve_pose_from_pair(points2[None], points3d[None])[0]]
