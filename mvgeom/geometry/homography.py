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
from typing import Optional

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous, convert_points_to_homogeneous
from mvgeom.geometry.epipolar import normalize_points, normalize_transformation
from mvgeom.geometry.linalg import transform_points
from mvgeom.utils.helpers import _torch_svd_cast, check_nullspace_dimension, safe_inverse_with_mask

__all__ = [
    "find_homography_dlt",
    "find_homography_tls",
    "homography_design_matrix",
    "oneway_transfer_error",
    "symmetric_transfer_error",
]


def _euclidean(points: Tensor) -> Tensor:
    return convert_points_from_homogeneous(points) if points.shape[-1] == 3 else points


def _distance(error_squared: Tensor, squared: bool, eps: float) -> Tensor:
    return error_squared if squared else (error_squared + eps).sqrt()


def oneway_transfer_error(pts1: Tensor, pts2: Tensor, H: Tensor, squared: bool = True, eps: float = 1e-8) -> Tensor:
    r"""Distance in the second image between :math:`H x_1` and :math:`x_2`.

    Args:
        pts1: points in the first image :math:`(B, N, 2)`, or homogeneous :math:`(B, N, 3)`.
        pts2: points in the second image :math:`(B, N, 2)`, or homogeneous :math:`(B, N, 3)`.
        H: homographies from the first to the second image :math:`(B, 3, 3)`.
        squared: return the squared distance.
        eps: added under the square root.

    Returns:
        the per correspondence error :math:`(B, N)`.
    """
    MVG_CHECK_SHAPE(H, ["B", "3", "3"])
    diff = transform_points(H, _euclidean(pts1)) - _euclidean(pts2)
    return _distance(diff.pow(2).sum(dim=-1), squared, eps)


def symmetric_transfer_error(pts1: Tensor, pts2: Tensor, H: Tensor, squared: bool = True, eps: float = 1e-8) -> Tensor:
    r"""Sum of the transfer errors through :math:`H` and through :math:`H^{-1}`.

    Singular homographies get the largest representable error. Arguments are those of
    :func:`oneway_transfer_error`.
    """
    MVG_CHECK_SHAPE(H, ["B", "3", "3"])
    pts1, pts2 = _euclidean(pts1), _euclidean(pts2)
    H_inv, invertible = safe_inverse_with_mask(H)
    total = oneway_transfer_error(pts1, pts2, H) + oneway_transfer_error(pts2, pts1, H_inv)
    total = total.masked_fill(~invertible[:, None], torch.finfo(total.dtype).max)
    return _distance(total, squared, eps)


def homography_design_matrix(points1: Tensor, points2: Tensor) -> Tensor:
    r"""Build the DLT system :math:`A h = 0` with two rows per correspondence.

    Each correspondence contributes the first two rows of :math:`[x_2]_\times H x_1 = 0`.

    Args:
        points1: points in the first image :math:`(B, N, 2)`.
        points2: points in the second image :math:`(B, N, 2)`.

    Returns:
        the design matrix :math:`(B, 2N, 9)` acting on the row-major flattening of :math:`H`.
    """
    p1 = convert_points_to_homogeneous(points1)
    x2, y2 = points2[..., :1], points2[..., 1:]
    zeros = torch.zeros_like(p1)
    row_x = torch.cat([zeros, -p1, y2 * p1], dim=-1)
    row_y = torch.cat([p1, zeros, -x2 * p1], dim=-1)
    return torch.stack([row_x, row_y], dim=-2).flatten(-3, -2)


def find_homography_dlt(
    points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None, normalize: bool = True
) -> Tensor:
    r"""Estimate the homography mapping ``points1`` onto ``points2`` with the direct linear transform.

    The solution is the right singular vector of the smallest singular value of the (optionally
    weighted) design matrix.

    Args:
        points1: points in the first image :math:`(B, N, 2)` with :math:`N \geq 4`.
        points2: points in the second image :math:`(B, N, 2)`.
        weights: non-negative weight per correspondence :math:`(B, N)`.
        normalize: condition both point sets with :func:`normalize_points` before solving.

    Returns:
        the homographies :math:`(B, 3, 3)` scaled so that :math:`H_{33} = 1`.

    Raises:
        DegenerateInputError: with fewer than four correspondences or when three of them are collinear.

    Example:
        >>> points1 = torch.tensor([[[0., 0.], [1., 0.], [1., 1.], [0., 1.]]])
        >>> H = find_homography_dlt(points1, points1 + 1.0)
        >>> torch.allclose(H[0, :2, 2], torch.tensor([1., 1.]), atol=1e-4)
        True
    """
    MVG_CHECK_SHAPE(points1, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(points1, points2)
    MVG_CHECK_SAMPLE_COUNT(points1, 4, what="correspondences")

    if normalize:
        src, T1 = normalize_points(points1)
        dst, T2 = normalize_points(points2)
    else:
        src, dst = points1, points2

    A = homography_design_matrix(src, dst)
    if weights is not None:
        MVG_CHECK_SHAPE(weights, ["B", "N"])
        A = A * weights.clamp_min(0.0).sqrt().repeat_interleave(2, dim=-1)[..., None]

    check_nullspace_dimension(A, 1, "homography")
    H = _torch_svd_cast(A)[2][..., -1].reshape(-1, 3, 3)
    if normalize:
        H = safe_inverse_with_mask(T2)[0] @ H @ T1
    return normalize_transformation(H)


def find_homography_tls(points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None) -> Tensor:
    r"""Estimate the homography mapping ``points1`` onto ``points2`` by total least squares.

    The conditioned points are split into the constraints :math:`\tilde{x}_1^T h_1 = x_2 \, \tilde{x}_1^T h_3`
    and :math:`\tilde{x}_1^T h_2 = y_2 \, \tilde{x}_1^T h_3` on the rows :math:`h_i` of :math:`H`. For a
    given :math:`h_3` the first two rows follow by linear least squares, which leaves a :math:`2N \times 3`
    homogeneous system in :math:`h_3` alone, solved under :math:`\|h_3\| = 1` (Harker and O'Leary,
    Computation of Homographies, BMVC 2005).

    Args:
        points1: points in the first image :math:`(B, N, 2)` with :math:`N \geq 4`.
        points2: points in the second image :math:`(B, N, 2)`.
        weights: non-negative weight per correspondence :math:`(B, N)`.

    Returns:
        the homographies :math:`(B, 3, 3)` scaled so that :math:`H_{33} = 1`.

    Raises:
        DegenerateInputError: with fewer than four correspondences or when three of them are collinear.

    Example:
        >>> points1 = torch.tensor([[[0., 0.], [1., 0.], [1., 1.], [0., 1.]]])
        >>> H = find_homography_tls(points1, 2.0 * points1)
        >>> torch.allclose(H, torch.diag(torch.tensor([2., 2., 1.]))[None], atol=1e-4)
        True
    """
    MVG_CHECK_SHAPE(points1, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(points1, points2)
    MVG_CHECK_SAMPLE_COUNT(points1, 4, what="correspondences")

    src, T1 = normalize_points(points1)
    dst, T2 = normalize_points(points2)

    X = convert_points_to_homogeneous(src)
    if weights is not None:
        MVG_CHECK_SHAPE(weights, ["B", "N"])
        X = X * weights.clamp_min(0.0).sqrt()[..., None]
    check_nullspace_dimension(X, 0, "homography")

    Q, R = torch.linalg.qr(X)
    coupled_x = -dst[..., :1] * X
    coupled_y = -dst[..., 1:] * X

    def remove_span(M: Tensor) -> Tensor:
        return M - Q @ (Q.transpose(-2, -1) @ M)

    reduced = torch.cat([remove_span(coupled_x), remove_span(coupled_y)], dim=-2)
    check_nullspace_dimension(reduced, 1, "homography")
    h3 = _torch_svd_cast(reduced)[2][..., -1:]

    def solve_rows(coupled: Tensor) -> Tensor:
        return -torch.linalg.solve_triangular(R, Q.transpose(-2, -1) @ (coupled @ h3), upper=True)[..., 0]

    H = torch.stack([solve_rows(coupled_x), solve_rows(coupled_y), h3[..., 0]], dim=-2)
    H = safe_inverse_with_mask(T2)[0] @ H @ T1
    return normalize_transformation(H)
