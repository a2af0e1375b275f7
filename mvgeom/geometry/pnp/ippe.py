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

r"""Infinitesimal Plane-based Pose Estimation (Collins and Bartoli, IJCV 2014)."""

from typing import Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.core.exceptions import DegenerateInputError
from mvgeom.geometry.homography import find_homography_dlt
from mvgeom.geometry.pnp.rigid import reprojection_error
from mvgeom.utils.helpers import degeneracy_tolerance

__all__ = ["solve_pnp_ippe"]


def _plane_frame(world_points: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """Return the centroid, a rotation whose third column is the plane normal, and the principal spreads."""
    centroid = world_points.mean(dim=-2, keepdim=True)
    centered = world_points - centroid
    cov = centered.transpose(-2, -1) @ centered / world_points.shape[-2]
    eigvals, eigvecs = torch.linalg.eigh(cov)
    e1, e2 = eigvecs[..., 2], eigvecs[..., 1]
    e3 = torch.linalg.cross(e1, e2, dim=-1)
    frame = torch.stack([e1, e2, e3], dim=-1)
    return centroid, frame, eigvals.flip(-1).clamp_min(0.0).sqrt()


def _rotations_from_jacobian(v: Tensor, J: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Return the two plane rotations consistent with the homography Jacobian ``J`` at the image point ``v``."""
    dtype = v.dtype
    eye3 = torch.eye(3, dtype=dtype, device=v.device).expand(v.shape[0], 3, 3)

    # Rv rotates the optical axis onto the viewing ray of v
    t = v.norm(dim=-1)
    moving = t > torch.finfo(dtype).eps
    safe_t = torch.where(moving, t, torch.ones_like(t))
    s = torch.sqrt(1.0 + t * t)
    cos_th, sin_th = 1.0 / s, t / s
    zeros = torch.zeros_like(t)
    Kx = torch.stack(
        [zeros, zeros, v[:, 0], zeros, zeros, v[:, 1], -v[:, 0], -v[:, 1], zeros], dim=-1
    ).view(-1, 3, 3) / safe_t[:, None, None]
    Rv = eye3 + sin_th[:, None, None] * Kx + (1.0 - cos_th)[:, None, None] * (Kx @ Kx)
    Rv = torch.where(moving[:, None, None], Rv, eye3)

    # B = [I | -v] Rv restricted to its first two columns
    B = Rv[:, :2, :2] - v[:, :, None] * Rv[:, 2:3, :2]
    A = torch.linalg.solve(B, J)

    # largest singular value of A
    AA = A @ A.transpose(-2, -1)
    a, b, c = AA[:, 0, 0], AA[:, 0, 1], AA[:, 1, 1]
    gamma = torch.sqrt(0.5 * (a + c + torch.sqrt((a - c) ** 2 + 4.0 * b * b)))
    R22 = A / gamma[:, None, None]

    h = torch.eye(2, dtype=dtype, device=v.device) - R22.transpose(-2, -1) @ R22
    b0 = h[:, 0, 0].clamp_min(0.0).sqrt()
    b1 = h[:, 1, 1].clamp_min(0.0).sqrt()
    b1 = torch.where(h[:, 0, 1] < 0, -b1, b1)
    bvec = torch.stack([b0, b1], dim=-1)

    col0 = torch.cat([R22[:, :, 0], b0[:, None]], dim=-1)
    col1 = torch.cat([R22[:, :, 1], b1[:, None]], dim=-1)
    d = torch.linalg.cross(col0, col1, dim=-1)
    cvec, a3 = d[:, :2], d[:, 2:]

    top1 = torch.cat([R22, cvec[:, :, None]], dim=-1)
    top2 = torch.cat([R22, -cvec[:, :, None]], dim=-1)
    R1 = Rv @ torch.cat([top1, torch.cat([bvec, a3], dim=-1)[:, None]], dim=-2)
    R2 = Rv @ torch.cat([top2, torch.cat([-bvec, a3], dim=-1)[:, None]], dim=-2)
    return R1, R2


def _translation_from_rotation(R: Tensor, plane_points: Tensor, img_points: Tensor) -> Tensor:
    r"""Solve the linear least squares problem for :math:`t` given the rotation and the plane points."""
    rotated = plane_points @ R.transpose(-2, -1)  # (B, N, 3)
    x, y = img_points[..., 0], img_points[..., 1]
    ones, zeros = torch.ones_like(x), torch.zeros_like(x)
    rows_x = torch.stack([ones, zeros, -x], dim=-1)
    rows_y = torch.stack([zeros, ones, -y], dim=-1)
    A = torch.cat([rows_x, rows_y], dim=-2)
    rhs = torch.cat([x * rotated[..., 2] - rotated[..., 0], y * rotated[..., 2] - rotated[..., 1]], dim=-1)
    return torch.linalg.lstsq(A, rhs[..., None]).solution


def solve_pnp_ippe(world_points: Tensor, img_points: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Solve the Perspective-n-Point problem for coplanar points with IPPE.

    The points are expressed in a frame attached to their plane, the plane to image homography is
    estimated with :func:`find_homography_dlt` and its Jacobian at the centroid is decomposed into the
    two rotations compatible with it. The translations follow by linear least squares.

    Args:
        world_points: coplanar world points with shape :math:`(B, N, 3)`, :math:`N \geq 4`.
        img_points: normalized image coordinates with shape :math:`(B, N, 2)`.

    Returns:
        - the two world to camera transformations with shape :math:`(B, 2, 3, 4)`, sorted by reprojection error.
        - their mean squared reprojection errors with shape :math:`(B, 2)`.

    Raises:
        DegenerateInputError: with fewer than four points, or points that are collinear or not coplanar.
    """
    MVG_CHECK_SHAPE(world_points, ["B", "N", "3"])
    MVG_CHECK_SHAPE(img_points, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(world_points[..., 0], img_points[..., 0])
    MVG_CHECK_SAMPLE_COUNT(world_points, 4, what="3d-2d correspondences")

    world = world_points.to(torch.float64)
    img = img_points.to(torch.float64)
    tol = degeneracy_tolerance(world_points.dtype)

    centroid, frame, spreads = _plane_frame(world)
    largest = spreads[:, 0].clamp_min(torch.finfo(torch.float64).tiny)
    if torch.any(spreads[:, 1] / largest < tol):
        raise DegenerateInputError("The world points are collinear.")
    if torch.any(spreads[:, 2] / largest > tol):
        raise DegenerateInputError(
            "IPPE requires coplanar world points.", actual_value=(spreads[:, 2] / largest).max().item()
        )

    plane_points = (world - centroid) @ frame
    plane_points = torch.cat([plane_points[..., :2], torch.zeros_like(plane_points[..., 2:])], dim=-1)

    H = find_homography_dlt(plane_points[..., :2], img)
    v = H[:, :2, 2]
    J = H[:, :2, :2] - v[:, :, None] * H[:, 2:3, :2]

    R1, R2 = _rotations_from_jacobian(v, J)
    poses, errors = [], []
    for R in (R1, R2):
        t = _translation_from_rotation(R, plane_points, img)
        # back to the world frame
        R_world = R @ frame.transpose(-2, -1)
        t_world = t - R_world @ centroid.transpose(-2, -1)
        pose = torch.cat([R_world, t_world], dim=-1)
        poses.append(pose)
        errors.append(reprojection_error(pose, world, img).mean(-1))

    poses_t, errors_t = torch.stack(poses, dim=1), torch.stack(errors, dim=1)
    order = errors_t.argsort(dim=1)
    poses_t = poses_t.gather(1, order[:, :, None, None].expand(-1, -1, 3, 4))
    errors_t = errors_t.gather(1, order)
    return poses_t.to(world_points.dtype), errors_t.to(world_points.dtype)
