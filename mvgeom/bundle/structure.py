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

"""Scene containers refined by bundle adjustment."""

from typing import Optional

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SHAPE

__all__ = ["SceneObservations", "SceneStructureMetric", "SceneStructureProjective"]


def _keep_mask(count: int, indices: Tensor, device: torch.device) -> Tensor:
    keep = torch.ones(count, dtype=torch.bool, device=device)
    keep[torch.as_tensor(indices, dtype=torch.long, device=device)] = False
    return keep


def _reindex(keep: Tensor) -> Tensor:
    """Map old indices to new ones, removed entries map to -1."""
    new_index = torch.cumsum(keep.long(), dim=0) - 1
    return torch.where(keep, new_index, torch.full_like(new_index, -1))


class SceneObservations:
    r"""Observation graph of a scene: observation :math:`k` is point ``point_idx[k]`` seen in view ``view_idx[k]``.

    Args:
        view_idx: view index of every observation with shape :math:`(M,)`.
        point_idx: point index of every observation with shape :math:`(M,)`.
        pixels: the observed image coordinates with shape :math:`(M, 2)`.
    """

    def __init__(self, view_idx: Tensor, point_idx: Tensor, pixels: Tensor) -> None:
        MVG_CHECK_SHAPE(pixels, ["M", "2"])
        MVG_CHECK(
            view_idx.shape == point_idx.shape == pixels.shape[:1],
            f"Inconsistent observation sizes: {tuple(view_idx.shape)}, {tuple(point_idx.shape)}, "
            f"{tuple(pixels.shape)}.",
        )
        self.view_idx = view_idx.long()
        self.point_idx = point_idx.long()
        self.pixels = pixels

    def __len__(self) -> int:
        return self.pixels.shape[0]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(num_observations={len(self)})"

    def validate(self, num_views: int, num_points: int) -> None:
        if len(self) == 0:
            return
        MVG_CHECK(
            int(self.view_idx.min()) >= 0 and int(self.view_idx.max()) < num_views,
            f"View indices must lie in [0, {num_views}).",
        )
        MVG_CHECK(
            int(self.point_idx.min()) >= 0 and int(self.point_idx.max()) < num_points,
            f"Point indices must lie in [0, {num_points}).",
        )

    def _filter(self, keep_views: Tensor, keep_points: Tensor) -> "SceneObservations":
        keep = keep_views[self.view_idx] & keep_points[self.point_idx]
        return SceneObservations(
            _reindex(keep_views)[self.view_idx[keep]], _reindex(keep_points)[self.point_idx[keep]], self.pixels[keep]
        )


class _SceneStructure:
    camera_attr: str = "poses"

    observations: SceneObservations
    points: Tensor
    known: Tensor

    @property
    def cameras(self) -> Tensor:
        return getattr(self, self.camera_attr)

    @cameras.setter
    def cameras(self, value: Tensor) -> None:
        setattr(self, self.camera_attr, value)

    @property
    def num_views(self) -> int:
        return self.cameras.shape[0]

    @property
    def num_points(self) -> int:
        return self.points.shape[0]

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(num_views={self.num_views}, num_points={self.num_points}, "
            f"num_observations={len(self.observations)})"
        )

    def _init_common(self, cameras: Tensor, points: Tensor, observations: SceneObservations, known: Optional[Tensor]):
        MVG_CHECK_SHAPE(cameras, ["V", "3", "4"])
        self.cameras = cameras
        self.points = points
        self.observations = observations
        self.known = torch.zeros(cameras.shape[0], dtype=torch.bool, device=cameras.device) if known is None else known
        MVG_CHECK(self.known.shape == cameras.shape[:1], "Expected one known flag per view.")
        observations.validate(self.num_views, self.num_points)

    def remove_points(self, indices: Tensor) -> None:
        """Remove the given points and every observation of them."""
        keep = _keep_mask(self.num_points, indices, self.points.device)
        self.observations = self.observations._filter(torch.ones_like(self.known), keep)
        self.points = self.points[keep]

    def remove_views(self, indices: Tensor) -> None:
        """Remove the given views and every observation made from them. Points are kept."""
        keep = _keep_mask(self.num_views, indices, self.known.device)
        all_points = torch.ones(self.num_points, dtype=torch.bool, device=self.known.device)
        self.observations = self.observations._filter(keep, all_points)
        self._select_views(keep)

    def _select_views(self, keep: Tensor) -> None:
        self.cameras = self.cameras[keep]
        self.known = self.known[keep]


class SceneStructureMetric(_SceneStructure):
    r"""Calibrated scene: world to camera poses, euclidean points and fixed intrinsics.

    Args:
        poses: world to camera poses :math:`[R | t]` with shape :math:`(V, 3, 4)`.
        points: the 3d points with shape :math:`(P, 3)`.
        observations: the observation graph, in pixels when ``intrinsics`` is given, in normalized
            image coordinates otherwise.
        intrinsics: optional camera matrices with shape :math:`(V, 3, 3)`.
        known: optional flags :math:`(V,)` of the views whose pose is held fixed.
    """

    camera_attr = "poses"

    def __init__(
        self,
        poses: Tensor,
        points: Tensor,
        observations: SceneObservations,
        intrinsics: Optional[Tensor] = None,
        known: Optional[Tensor] = None,
    ) -> None:
        MVG_CHECK_SHAPE(points, ["P", "3"])
        if intrinsics is not None:
            MVG_CHECK_SHAPE(intrinsics, ["V", "3", "3"])
            MVG_CHECK(intrinsics.shape[0] == poses.shape[0], "Expected one camera matrix per view.")
        self.intrinsics = intrinsics
        self._init_common(poses, points, observations, known)

    def _select_views(self, keep: Tensor) -> None:
        super()._select_views(keep)
        if self.intrinsics is not None:
            self.intrinsics = self.intrinsics[keep]


class SceneStructureProjective(_SceneStructure):
    r"""Uncalibrated scene: camera matrices and homogeneous points, both defined up to scale.

    Args:
        cameras: camera matrices with shape :math:`(V, 3, 4)`.
        points: homogeneous points with shape :math:`(P, 4)`.
        observations: the observation graph in pixels.
        known: optional flags :math:`(V,)` of the views whose camera is held fixed.
    """

    camera_attr = "camera_matrices"

    def __init__(
        self, cameras: Tensor, points: Tensor, observations: SceneObservations, known: Optional[Tensor] = None
    ) -> None:
        MVG_CHECK_SHAPE(points, ["P", "4"])
        self._init_common(cameras, points, observations, known)
