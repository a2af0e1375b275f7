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
from typing import Tuple

import torch
import torch.nn.functional as F

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SHAPE

__all__ = [
    "axis_angle_to_rotation_matrix",
    "convert_points_from_homogeneous",
    "convert_points_to_homogeneous",
    "denormalize_points_with_intrinsics",
    "normalize_points_with_intrinsics",
    "rotation_matrix_to_angle",
]


def _check_point_set(points: Tensor) -> None:
    if not isinstance(points, Tensor):
        raise TypeError(f"Expected a Tensor of points. Got {type(points)}")
    if points.dim() < 2:
        raise ValueError(f"Expected points with shape (*, N, D). Got {tuple(points.shape)}")


def convert_points_from_homogeneous(points: Tensor, eps: float = 1e-12) -> Tensor:
    r"""Divide homogeneous points :math:`(*, N, D)` by their last coordinate, giving :math:`(*, N, D-1)`.

    Points at infinity, whose last coordinate is below ``eps`` in magnitude, keep their leading coordinates.

    Examples:
        >>> convert_points_from_homogeneous(torch.tensor([[2., 4., 2.]]))
        tensor([[1., 2.]])
    """
    _check_point_set(points)
    w = points[..., -1:]
    return points[..., :-1] / torch.where(w.abs() > eps, w, torch.ones_like(w))


def convert_points_to_homogeneous(points: Tensor) -> Tensor:
    r"""Append a unit coordinate to points :math:`(*, N, D)`, giving :math:`(*, N, D+1)`.

    Examples:
        >>> convert_points_to_homogeneous(torch.tensor([[1., 2.]]))
        tensor([[1., 2., 1.]])
    """
    _check_point_set(points)
    return F.pad(points, [0, 1], "constant", 1.0)


def axis_angle_to_rotation_matrix(axis_angle: Tensor) -> Tensor:
    r"""Convert 3d vector of axis-angle rotation to 3x3 rotation matrix (Rodrigues formula).

    The small angle branch uses the Taylor expansion, so the function and its derivatives stay finite
    at the identity. Only out-of-place operations are used, which keeps the function usable inside
    ``torch.func`` transforms.

    Args:
        axis_angle: tensor of 3d vector of axis-angle rotations in radians with shape :math:`(*, 3)`.

    Returns:
        tensor of rotation matrices of shape :math:`(*, 3, 3)`.

    Example:
        >>> input = torch.tensor([[0., 0., 0.]])
        >>> axis_angle_to_rotation_matrix(input)
        tensor([[[1., 0., 0.],
                 [0., 1., 0.],
                 [0., 0., 1.]]])
    """
    MVG_CHECK_SHAPE(axis_angle, ["*", "3"])

    theta2 = (axis_angle * axis_angle).sum(-1, keepdim=True)
    small = theta2 < 1e-8
    theta2_safe = torch.where(small, torch.ones_like(theta2), theta2)
    theta = torch.sqrt(theta2_safe)

    # sin(t)/t and (1 - cos(t))/t^2
    a = torch.where(small, 1.0 - theta2 / 6.0, torch.sin(theta) / theta)
    b = torch.where(small, 0.5 - theta2 / 24.0, (1.0 - torch.cos(theta)) / theta2_safe)

    wx, wy, wz = axis_angle[..., 0], axis_angle[..., 1], axis_angle[..., 2]
    zeros = torch.zeros_like(wx)
    K = torch.stack([zeros, -wz, wy, wz, zeros, -wx, -wy, wx, zeros], dim=-1).reshape(*axis_angle.shape[:-1], 3, 3)
    eye = torch.eye(3, device=axis_angle.device, dtype=axis_angle.dtype).expand_as(K)
    return eye + a[..., None] * K + b[..., None] * (K @ K)


def rotation_matrix_to_angle(R: Tensor) -> Tensor:
    r"""Return the rotation angle in radians of rotation matrices :math:`(*, 3, 3)` as :math:`(*)`."""
    MVG_CHECK_SHAPE(R, ["*", "3", "3"])
    cos = 0.5 * (torch.diagonal(R, dim1=-2, dim2=-1).sum(-1) - 1.0)
    return torch.acos(cos.clamp(-1.0, 1.0))


def _intrinsics(camera_matrix: Tensor, points: Tensor) -> Tuple[Tensor, Tensor, Tensor, Tensor, Tensor]:
    """Return ``fx, fy, skew, cx, cy`` broadcastable against the point coordinates."""
    MVG_CHECK_SHAPE(points, ["*", "2"])
    MVG_CHECK_SHAPE(camera_matrix, ["*", "3", "3"])
    K = camera_matrix[..., None, :, :] if camera_matrix.dim() <= points.dim() else camera_matrix
    return K[..., 0, 0], K[..., 1, 1], K[..., 0, 1], K[..., 0, 2], K[..., 1, 2]


def normalize_points_with_intrinsics(point_2d: Tensor, camera_matrix: Tensor) -> Tensor:
    """Map pixels :math:`(*, 2)` to normalized image coordinates with intrinsics :math:`(*, 3, 3)`.

    Example:
        >>> normalize_points_with_intrinsics(torch.tensor([[0.5, 0.5]]), torch.eye(3)[None])
        tensor([[0.5000, 0.5000]])
    """
    fx, fy, skew, cx, cy = _intrinsics(camera_matrix, point_2d)
    y = (point_2d[..., 1] - cy) / fy
    x = (point_2d[..., 0] - cx - skew * y) / fx
    return torch.stack([x, y], dim=-1)


def denormalize_points_with_intrinsics(point_2d_norm: Tensor, camera_matrix: Tensor) -> Tensor:
    """Map normalized image coordinates :math:`(*, 2)` back to pixels with intrinsics :math:`(*, 3, 3)`."""
    fx, fy, skew, cx, cy = _intrinsics(camera_matrix, point_2d_norm)
    x, y = point_2d_norm[..., 0], point_2d_norm[..., 1]
    return torch.stack([fx * x + skew * y + cx, fy * y + cy], dim=-1)
