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
"""Pinhole camera matrices: composition, depth and projection."""

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous, convert_points_to_homogeneous

__all__ = ["depth_from_point", "project_points", "projection_from_KRt"]


def projection_from_KRt(K: Tensor, R: Tensor, t: Tensor) -> Tensor:
    r"""Compose the camera matrix :math:`P = K [R | t]`.

    Args:
       K: intrinsics :math:`(*, 3, 3)`.
       R: rotations :math:`(*, 3, 3)`.
       t: translations :math:`(*, 3, 1)`.

    Returns:
       the camera matrices :math:`(*, 3, 4)`.
    """
    MVG_CHECK_SHAPE(K, ["*", "3", "3"])
    MVG_CHECK_SHAPE(R, ["*", "3", "3"])
    MVG_CHECK_SHAPE(t, ["*", "3", "1"])
    MVG_CHECK(K.dim() == R.dim() == t.dim(), "K, R and t must have the same number of dimensions.")
    return K @ torch.cat([R, t], dim=-1)


def depth_from_point(R: Tensor, t: Tensor, X: Tensor) -> Tensor:
    r"""Depth of the points :math:`X` :math:`(*, N, 3)` in a camera posed by :math:`R, t`, shape :math:`(*, N)`."""
    return (X @ R[..., 2:, :].transpose(-2, -1))[..., 0] + t[..., 2, :]


def project_points(P: Tensor, points3d: Tensor) -> Tensor:
    r"""Project euclidean or homogeneous 3d points with :math:`(*, 3, 4)` camera matrices.

    Args:
        P: projection matrices with shape :math:`(*, 3, 4)`.
        points3d: points with shape :math:`(*, N, 3)` or homogeneous points :math:`(*, N, 4)`.

    Returns:
        the pixel coordinates with shape :math:`(*, N, 2)`.
    """
    MVG_CHECK_SHAPE(P, ["*", "3", "4"])
    if points3d.shape[-1] == 3:
        points3d = convert_points_to_homogeneous(points3d)
    MVG_CHECK_SHAPE(points3d, ["*", "N", "4"])
    return convert_points_from_homogeneous(points3d @ P.transpose(-2, -1))
