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

"""Module with the functionalities for triangulation."""

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous
from mvgeom.utils.helpers import _torch_svd_cast, check_nullspace_dimension

__all__ = ["triangulate_points", "triangulate_points_nview"]


def _dlt_rows(P: Tensor, points: Tensor) -> Tensor:
    """Return the two DLT equations :math:`(*, N, 2, 4)` contributed by one view."""
    row_x = points[..., 0:1] * P[..., None, 2, :] - P[..., None, 0, :]
    row_y = points[..., 1:2] * P[..., None, 2, :] - P[..., None, 1, :]
    return torch.stack([row_x, row_y], dim=-2)


def triangulate_points(P1: Tensor, P2: Tensor, points1: Tensor, points2: Tensor) -> Tensor:
    r"""Reconstruct a bunch of points by DLT.

    Triangulates the 3d position of 2d correspondences between two images.
    Reference: Internally it uses DLT method from Hartley/Zisserman 12.2 pag.312

    The input points are assumed to be inliers correspondences. The method does not perform any
    robust estimation.

    Args:
        P1: The projection matrix for the first camera with shape :math:`(*, 3, 4)`.
        P2: The projection matrix for the second camera with shape :math:`(*, 3, 4)`.
        points1: The set of points seen from the first camera frame in the camera plane
          coordinates with shape :math:`(*, N, 2)`.
        points2: The set of points seen from the second camera frame in the camera plane
          coordinates with shape :math:`(*, N, 2)`.

    Returns:
        The reconstructed 3d points in the world frame with shape :math:`(*, N, 3)`.
    """
    MVG_CHECK_SHAPE(P1, ["*", "3", "4"])
    MVG_CHECK_SHAPE(P2, ["*", "3", "4"])
    MVG_CHECK_SHAPE(points1, ["*", "N", "2"])
    MVG_CHECK_SHAPE(points2, ["*", "N", "2"])

    # (*, N, 4, 4) system, solved by the right singular vector of the smallest singular value
    X = torch.cat([_dlt_rows(P1, points1), _dlt_rows(P2, points2)], dim=-2)
    _, _, V = _torch_svd_cast(X)

    points3d_h = V[..., -1]
    return convert_points_from_homogeneous(points3d_h)


def triangulate_points_nview(projections: Tensor, points: Tensor, homogeneous: bool = False) -> Tensor:
    r"""Reconstruct points observed in an arbitrary number of views by DLT.

    Every view contributes two equations per point. The rows are scaled to unit norm before the
    system is solved, which equalises the weight of the views.

    Args:
        projections: camera matrices with shape :math:`(*, V, 3, 4)`, :math:`V \geq 2`.
        points: the observations of the :math:`N` points in every view with shape :math:`(*, V, N, 2)`.
        homogeneous: whether to return unit norm homogeneous points instead of euclidean ones.

    Returns:
        The reconstructed points with shape :math:`(*, N, 3)`, or :math:`(*, N, 4)` when ``homogeneous``
        is set. Homogeneous points are scaled to unit norm with a non-negative last coordinate.

    Raises:
        DegenerateInputError: with fewer than two views, or when the camera centres and a point are collinear.
    """
    MVG_CHECK_SHAPE(projections, ["*", "V", "3", "4"])
    MVG_CHECK_SHAPE(points, ["*", "V", "N", "2"])
    MVG_CHECK(projections.shape[:-2] == points.shape[:-2], "Views of projections and points must match.")
    MVG_CHECK_SAMPLE_COUNT(projections, 2, dim=-3, what="views")

    rows = _dlt_rows(projections, points)  # (*, V, N, 2, 4)
    rows = rows.movedim(-4, -3).flatten(-3, -2)  # (*, N, 2V, 4)
    rows = rows / rows.norm(dim=-1, keepdim=True).clamp_min(torch.finfo(rows.dtype).tiny)

    flat = rows.reshape(-1, rows.shape[-2], 4)
    check_nullspace_dimension(flat, 1, "triangulation system")

    _, _, V = _torch_svd_cast(rows)
    points_h = V[..., -1]
    if not homogeneous:
        return convert_points_from_homogeneous(points_h)

    points_h = points_h / points_h.norm(dim=-1, keepdim=True)
    sign = torch.where(points_h[..., 3:] < 0, -torch.ones_like(points_h[..., 3:]), torch.ones_like(points_h[..., 3:]))
    return points_h * sign
