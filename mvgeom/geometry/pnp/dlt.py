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

from typing import Optional, Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import (
    MVG_CHECK,
    MVG_CHECK_IS_TENSOR,
    MVG_CHECK_SAME_SHAPE,
    MVG_CHECK_SAMPLE_COUNT,
    MVG_CHECK_SHAPE,
)
from mvgeom.core.exceptions import DegenerateInputError
from mvgeom.geometry.conversions import convert_points_to_homogeneous, normalize_points_with_intrinsics
from mvgeom.geometry.linalg import transform_points
from mvgeom.utils.helpers import _torch_linalg_svdvals, _torch_svd_cast
from mvgeom.utils.misc import eye_like

__all__ = ["solve_pnp_dlt"]


def _mean_isotropic_scale_normalize(points: Tensor, eps: float = 1e-8) -> Tuple[Tensor, Tensor]:
    r"""Normalize points so that their centroid is the origin and their mean distance to it is :math:`\sqrt{D}`.

    Args:
       points : Tensor containing the points to be normalized with shape :math:`(B, N, D)`.
       eps : Small value to avoid division by zero error.

    Returns:
       Tuple containing the normalized points in the shape :math:`(B, N, D)` and the transformation matrix
       in the shape :math:`(B, D+1, D+1)`.
    """
    MVG_CHECK_SHAPE(points, ["B", "N", "D"])
    D = points.shape[-1]
    x_mean = points.mean(dim=1, keepdim=True)
    scale = (points - x_mean).norm(dim=-1, p=2).mean(dim=-1)
    scale = D**0.5 / (scale + eps)

    diag = torch.diag_embed(scale[:, None].expand(-1, D))
    shift = -scale[:, None, None] * x_mean.transpose(-2, -1)
    bottom = torch.cat([torch.zeros_like(x_mean), torch.ones_like(x_mean[..., :1])], dim=-1)
    transform = torch.cat([torch.cat([diag, shift], dim=-1), bottom], dim=-2)
    return transform_points(transform, points), transform


def solve_pnp_dlt(
    world_points: Tensor,
    img_points: Tensor,
    intrinsics: Tensor,
    weights: Optional[Tensor] = None,
    svd_eps: float = 1e-4,
) -> Tensor:
    r"""Solve the Perspective-n-Point (PnP) problem using Direct Linear Transform (DLT).

    Given a batch of :math:`N \geq 6` non-coplanar 3D points in the world space, the matching pixel
    observations and the camera intrinsics, estimates the world to camera transformations. The
    :math:`3 \times 4` camera matrix is solved for linearly, then its left block is orthogonalised with a
    QR decomposition.

    Another bad condition occurs when the camera and the points lie on a twisted cubic. This function
    does not check for it.

    Args:
        world_points: A tensor with shape :math:`(B, N, 3)` representing the points in the world space.
        img_points: A tensor with shape :math:`(B, N, 2)` representing the points in the image space.
        intrinsics: A tensor with shape :math:`(B, 3, 3)` representing the intrinsic matrices.
        weights: A tensor with shape :math:`(B, N)` representing the weights for each point.
        svd_eps: smallest normalised singular value accepted for the world points.

    Returns:
        A tensor with shape :math:`(B, 3, 4)` representing the estimated world to camera transformations.

    Raises:
        DegenerateInputError: with fewer than 6 points or when the world points are coplanar or collinear.
    """
    MVG_CHECK_IS_TENSOR(world_points)
    MVG_CHECK_IS_TENSOR(img_points)
    MVG_CHECK_IS_TENSOR(intrinsics)
    MVG_CHECK(world_points.dtype in (torch.float32, torch.float64), "Only fp32 and fp64 are supported.")
    MVG_CHECK_SHAPE(world_points, ["B", "N", "3"])
    MVG_CHECK_SHAPE(img_points, ["B", "N", "2"])
    MVG_CHECK_SHAPE(intrinsics, ["B", "3", "3"])
    MVG_CHECK_SAME_SHAPE(world_points[:, :, 0], img_points[:, :, 0])
    MVG_CHECK_SAMPLE_COUNT(world_points, 6, what="3d-2d correspondences")

    B, N = world_points.shape[:2]

    world_points_norm, world_transform_norm = _mean_isotropic_scale_normalize(world_points)
    s = _torch_linalg_svdvals(world_points_norm)
    if torch.any(s[:, -1] < svd_eps):
        raise DegenerateInputError(
            "The world points lie on a plane or a line, which the DLT cannot handle.",
            actual_value=s[:, -1].min().item(),
        )
    world_points_norm_h = convert_points_to_homogeneous(world_points_norm)

    img_points_inv = normalize_points_with_intrinsics(img_points, intrinsics)
    img_points_norm, img_transform_norm = _mean_isotropic_scale_normalize(img_points_inv)

    # two equations per point acting on the row-major flattening of the 3x4 matrix
    zeros = torch.zeros_like(world_points_norm_h)
    row_x = torch.cat([world_points_norm_h, zeros, -img_points_norm[..., 0:1] * world_points_norm_h], dim=-1)
    row_y = torch.cat([zeros, world_points_norm_h, -img_points_norm[..., 1:2] * world_points_norm_h], dim=-1)
    system = torch.stack([row_x, row_y], dim=-2).reshape(B, 2 * N, 12)

    if weights is not None:
        MVG_CHECK_SHAPE(weights, ["B", "N"])
        system = system * weights.repeat_interleave(2, dim=-1)[..., None]

    _, _, v = _torch_svd_cast(system)
    solution = v[..., -1].reshape(B, 3, 4)

    # undo the normalisations
    solution = torch.linalg.solve(img_transform_norm, solution @ world_transform_norm)

    # the solution is defined up to scale: fix the sign with the determinant and the scale with the first column
    det = torch.linalg.det(solution[:, :3, :3])
    solution = torch.where(det[:, None, None] < 0, -solution, solution)
    solution = solution / solution[:, :3, 0].norm(dim=-1)[:, None, None]

    ortho, right = torch.linalg.qr(solution[:, :3, :3])
    col_sign_fix = torch.sign(eye_like(3, ortho) * right)
    rot_mat = ortho @ col_sign_fix

    return torch.cat([rot_mat, solution[:, :3, 3:4]], dim=-1)
