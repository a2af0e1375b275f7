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

"""Reprojection models of the bundle adjustment with their local parametrisations."""

from typing import Optional, Tuple

import torch

from mvgeom.bundle.structure import SceneStructureMetric, SceneStructureProjective
from mvgeom.core import Tensor
from mvgeom.geometry.conversions import axis_angle_to_rotation_matrix, convert_points_from_homogeneous

__all__ = ["BundleResidual", "MetricBundleResidual", "ProjectiveBundleResidual"]


class BundleResidual:
    r"""Reprojection error of a scene with its update rules.

    The cameras are :math:`(V, 3, 4)` tensors and the points :math:`(P, D)` ones. Updates are expressed by
    a ``camera_block`` sized vector per view and a ``point_block`` sized vector per point.
    """

    camera_block: int
    point_block: int

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def state(self, structure) -> Tuple[Tensor, Tensor, Optional[Tensor]]:
        """Return the cameras, the points and the intrinsics of the structure in double precision."""
        raise NotImplementedError

    def commit(self, structure, cameras: Tensor, points: Tensor) -> None:
        raise NotImplementedError

    def retract(
        self, cameras: Tensor, points: Tensor, camera_delta: Tensor, point_delta: Tensor
    ) -> Tuple[Tensor, Tensor]:
        raise NotImplementedError

    def project(self, cameras: Tensor, points: Tensor, intrinsics: Optional[Tensor]) -> Tensor:
        r"""Project the points :math:`(M, D)` with the cameras :math:`(M, 3, 4)` to :math:`(M, 2)`."""
        raise NotImplementedError


class MetricBundleResidual(BundleResidual):
    r"""Reprojection error of a :class:`SceneStructureMetric`.

    A view is updated by :math:`R \leftarrow \exp(\omega) R` and :math:`t \leftarrow t + \delta t`, a point
    additively. The intrinsics are held fixed.
    """

    camera_block = 6
    point_block = 3

    def state(self, structure: SceneStructureMetric) -> Tuple[Tensor, Tensor, Optional[Tensor]]:
        intrinsics = structure.intrinsics.detach().to(torch.float64) if structure.intrinsics is not None else None
        return structure.poses.detach().to(torch.float64), structure.points.detach().to(torch.float64), intrinsics

    def commit(self, structure: SceneStructureMetric, cameras: Tensor, points: Tensor) -> None:
        structure.poses = cameras.to(structure.poses.dtype)
        structure.points = points.to(structure.points.dtype)

    def retract(
        self, cameras: Tensor, points: Tensor, camera_delta: Tensor, point_delta: Tensor
    ) -> Tuple[Tensor, Tensor]:
        R = axis_angle_to_rotation_matrix(camera_delta[..., :3]) @ cameras[..., :3]
        t = cameras[..., 3] + camera_delta[..., 3:]
        return torch.cat([R, t[..., None]], dim=-1), points + point_delta

    def project(self, cameras: Tensor, points: Tensor, intrinsics: Optional[Tensor]) -> Tensor:
        points_cam = (cameras[..., :3] @ points[..., None])[..., 0] + cameras[..., 3]
        normalized = convert_points_from_homogeneous(points_cam)
        if intrinsics is None:
            return normalized
        return (intrinsics[..., :2, :2] @ normalized[..., None])[..., 0] + intrinsics[..., :2, 2]


class ProjectiveBundleResidual(BundleResidual):
    r"""Reprojection error of a :class:`SceneStructureProjective`.

    Cameras and points are updated additively and rescaled to unit norm.
    """

    camera_block = 12
    point_block = 4

    def state(self, structure: SceneStructureProjective) -> Tuple[Tensor, Tensor, Optional[Tensor]]:
        return structure.cameras.detach().to(torch.float64), structure.points.detach().to(torch.float64), None

    def commit(self, structure: SceneStructureProjective, cameras: Tensor, points: Tensor) -> None:
        structure.cameras = cameras.to(structure.cameras.dtype)
        structure.points = points.to(structure.points.dtype)

    def retract(
        self, cameras: Tensor, points: Tensor, camera_delta: Tensor, point_delta: Tensor
    ) -> Tuple[Tensor, Tensor]:
        cameras = cameras + camera_delta.reshape(cameras.shape)
        points = points + point_delta
        cameras = cameras / cameras.flatten(-2).norm(dim=-1)[..., None, None]
        return cameras, points / points.norm(dim=-1, keepdim=True)

    def project(self, cameras: Tensor, points: Tensor, intrinsics: Optional[Tensor]) -> Tensor:
        return convert_points_from_homogeneous((cameras @ points[..., None])[..., 0])
