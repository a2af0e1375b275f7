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

"""Rigid motion helpers shared by the PnP solvers."""

from typing import Optional

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SAME_SHAPE, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous

__all__ = ["find_rigid_transform", "reprojection_error", "transform_to_camera"]


def find_rigid_transform(src: Tensor, dst: Tensor, weights: Optional[Tensor] = None) -> Tensor:
    r"""Fit the rotation and translation mapping a set of 3d points onto another one (Kabsch).

    Finds :math:`R, t` minimising :math:`\sum_i w_i \| R s_i + t - d_i \|^2` with :math:`\det R = 1`.

    Args:
        src: source points with shape :math:`(*, N, 3)`.
        dst: destination points with shape :math:`(*, N, 3)`.
        weights: optional non-negative weights with shape :math:`(*, N)`.

    Returns:
        the transformation :math:`[R | t]` with shape :math:`(*, 3, 4)`.

    Example:
        >>> src = torch.rand(1, 5, 3)
        >>> pose = find_rigid_transform(src, src + 1.0)
        >>> torch.allclose(pose[0, :, 3], torch.ones(3), atol=1e-4)
        True
    """
    MVG_CHECK_SHAPE(src, ["*", "N", "3"])
    MVG_CHECK_SAME_SHAPE(src, dst)

    if weights is None:
        weights = torch.ones_like(src[..., 0])
    w = weights[..., None] / weights.sum(-1, keepdim=True)[..., None].clamp_min(torch.finfo(src.dtype).tiny)

    src_mean = (w * src).sum(-2, keepdim=True)
    dst_mean = (w * dst).sum(-2, keepdim=True)
    cov = (w * (src - src_mean)).transpose(-2, -1) @ (dst - dst_mean)

    U, _, Vh = torch.linalg.svd(cov)
    V = Vh.transpose(-2, -1)
    d = torch.sign(torch.linalg.det(V @ U.transpose(-2, -1)))
    d = torch.where(d == 0, torch.ones_like(d), d)
    D = torch.diag_embed(torch.stack([torch.ones_like(d), torch.ones_like(d), d], dim=-1))
    R = V @ D @ U.transpose(-2, -1)
    t = dst_mean.transpose(-2, -1) - R @ src_mean.transpose(-2, -1)
    return torch.cat([R, t], dim=-1)


def transform_to_camera(pose: Tensor, points3d: Tensor) -> Tensor:
    r"""Express world points in the camera frame, :math:`x_{cam} = R X + t`.

    Args:
        pose: world to camera transformations with shape :math:`(*, 3, 4)`.
        points3d: world points with shape :math:`(*, N, 3)`.

    Returns:
        the camera frame points with shape :math:`(*, N, 3)`.
    """
    MVG_CHECK_SHAPE(pose, ["*", "3", "4"])
    return points3d @ pose[..., :3].transpose(-2, -1) + pose[..., None, :, 3]


def reprojection_error(pose: Tensor, world_points: Tensor, img_points: Tensor, squared: bool = True) -> Tensor:
    r"""Return the reprojection error of 3d-2d correspondences in normalized image coordinates.

    Args:
        pose: world to camera transformations with shape :math:`(*, 3, 4)`.
        world_points: world points with shape :math:`(*, N, 3)`.
        img_points: normalized image observations with shape :math:`(*, N, 2)`.
        squared: if True (default), the squared distance is returned.

    Returns:
        the error per point with shape :math:`(*, N)`.
    """
    MVG_CHECK_SHAPE(world_points, ["*", "N", "3"])
    MVG_CHECK_SHAPE(img_points, ["*", "N", "2"])
    projected = convert_points_from_homogeneous(transform_to_camera(pose, world_points))
    error = (projected - img_points).pow(2).sum(-1)
    if squared:
        return error
    return error.sqrt()
