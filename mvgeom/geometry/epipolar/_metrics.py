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
"""Point to model distances used to score and refine epipolar and homography models.

Every function accepts Euclidean :math:`(*, N, 2)` or homogeneous :math:`(*, N, 3)` points.
"""

from typing import Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_IS_TENSOR, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_to_homogeneous

__all__ = [
    "algebraic_epipolar_distance",
    "epipolar_lines",
    "homography_sampson_error",
    "sampson_epipolar_distance",
    "symmetrical_epipolar_distance",
]


def _homogeneous(points: Tensor) -> Tensor:
    return convert_points_to_homogeneous(points) if points.shape[-1] == 2 else points


def epipolar_lines(pts1: Tensor, pts2: Tensor, Fm: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    r"""Epipolar lines of both views and the algebraic error of each correspondence.

    Args:
        pts1: points in the first view :math:`(*, N, 2|3)`.
        pts2: points in the second view :math:`(*, N, 2|3)`.
        Fm: fundamental or essential matrices :math:`(*, 3, 3)`.

    Returns:
        - :math:`F x` in the second view :math:`(*, N, 3)`.
        - :math:`F^T x'` in the first view :math:`(*, N, 3)`.
        - :math:`x'^T F x` with shape :math:`(*, N)`.
    """
    MVG_CHECK_IS_TENSOR(Fm)
    MVG_CHECK_SHAPE(Fm, ["*", "3", "3"])
    x1, x2 = _homogeneous(pts1), _homogeneous(pts2)

    in_second = x1 @ Fm.transpose(-2, -1)
    in_first = x2 @ Fm
    return in_second, in_first, (x2 * in_second).sum(dim=-1)


def _line_gradient_sq(lines: Tensor) -> Tensor:
    return lines[..., :2].pow(2).sum(-1)


def _distance(error_squared: Tensor, squared: bool, eps: float) -> Tensor:
    return error_squared if squared else (error_squared + eps).sqrt()


def algebraic_epipolar_distance(pts1: Tensor, pts2: Tensor, Fm: Tensor, squared: bool = True) -> Tensor:
    r"""Algebraic residual :math:`x'^T F x`, squared or in absolute value, with shape :math:`(*, N)`."""
    _, _, algebraic = epipolar_lines(pts1, pts2, Fm)
    return algebraic.pow(2) if squared else algebraic.abs()


def sampson_epipolar_distance(
    pts1: Tensor, pts2: Tensor, Fm: Tensor, squared: bool = True, eps: float = 1e-8
) -> Tensor:
    r"""First order approximation of the reprojection error of a correspondence under :math:`F`.

    .. math::

        \frac{(x'^T F x)^2}{(Fx)_1^2 + (Fx)_2^2 + (F^T x')_1^2 + (F^T x')_2^2}

    Args:
        pts1: points in the first view :math:`(*, N, 2|3)`.
        pts2: points in the second view :math:`(*, N, 2|3)`.
        Fm: fundamental or essential matrices :math:`(*, 3, 3)`.
        squared: return the squared distance.
        eps: added to the denominator and under the square root.

    Returns:
        the distance per correspondence :math:`(*, N)`.

    Example:
        >>> pts = torch.rand(1, 8, 2)
        >>> F = torch.tensor([[[0., 0., 0.], [0., 0., -1.], [0., 1., 0.]]])
        >>> sampson_epipolar_distance(pts, pts, F).shape
        torch.Size([1, 8])
    """
    in_second, in_first, algebraic = epipolar_lines(pts1, pts2, Fm)
    gradient = _line_gradient_sq(in_second) + _line_gradient_sq(in_first)
    return _distance(algebraic.pow(2) / (gradient + eps), squared, eps)


def symmetrical_epipolar_distance(
    pts1: Tensor, pts2: Tensor, Fm: Tensor, squared: bool = True, eps: float = 1e-8
) -> Tensor:
    r"""Sum of the squared distances of each point to the epipolar line of its counterpart.

    Arguments and output follow :func:`sampson_epipolar_distance`.
    """
    in_second, in_first, algebraic = epipolar_lines(pts1, pts2, Fm)
    weight = 1.0 / (_line_gradient_sq(in_second) + eps) + 1.0 / (_line_gradient_sq(in_first) + eps)
    return _distance(algebraic.pow(2) * weight, squared, eps)


def homography_sampson_terms(points1: Tensor, points2: Tensor, H: Tensor) -> Tuple[Tensor, Tensor, Tensor, Tensor]:
    r"""Return the algebraic errors of :math:`x' \times H x = 0` and the Gram matrix of their Jacobian.

    The two independent rows of the cross product (Hartley/Zisserman 4.3) are linearised with respect to
    the four point coordinates :math:`(x, y, x', y')`.

    Args:
        points1: points in the source image with shape :math:`(*, N, 2)`.
        points2: points in the destination image with shape :math:`(*, N, 2)`.
        H: homographies with shape :math:`(*, 3, 3)`.

    Returns:
        the algebraic errors :math:`(*, N, 2)` and the entries ``a, b, c`` of the symmetric
        :math:`2 \times 2` matrix :math:`J J^T`, each with shape :math:`(*, N)`.
    """
    MVG_CHECK_SHAPE(H, ["*", "3", "3"])
    MVG_CHECK_SHAPE(points1, ["*", "N", "2"])
    MVG_CHECK_SHAPE(points2, ["*", "N", "2"])

    Hx = convert_points_to_homogeneous(points1) @ H.transpose(-2, -1)
    u, v = points2[..., 0], points2[..., 1]
    h = H[..., None, :, :]

    e1 = v * Hx[..., 2] - Hx[..., 1]
    e2 = Hx[..., 0] - u * Hx[..., 2]

    j1x, j1y, j1v = v * h[..., 2, 0] - h[..., 1, 0], v * h[..., 2, 1] - h[..., 1, 1], Hx[..., 2]
    j2x, j2y, j2u = h[..., 0, 0] - u * h[..., 2, 0], h[..., 0, 1] - u * h[..., 2, 1], -Hx[..., 2]

    a = j1x * j1x + j1y * j1y + j1v * j1v
    b = j1x * j2x + j1y * j2y
    c = j2x * j2x + j2y * j2y + j2u * j2u
    return torch.stack([e1, e2], dim=-1), a, b, c


def homography_sampson_error(points1: Tensor, points2: Tensor, H: Tensor, eps: float = 1e-12) -> Tensor:
    r"""Return the squared Sampson error of correspondences under a homography.

    .. math::

        \epsilon^T (J J^T)^{-1} \epsilon

    with :math:`\epsilon` the two algebraic errors of :math:`x' \times H x = 0` and :math:`J` their
    derivatives with respect to the point coordinates.

    Args:
        points1: points in the source image with shape :math:`(*, N, 2)`.
        points2: points in the destination image with shape :math:`(*, N, 2)`.
        H: homographies mapping ``points1`` to ``points2`` with shape :math:`(*, 3, 3)`.
        eps: small constant added to the determinant.

    Returns:
        the squared Sampson error with shape :math:`(*, N)`.
    """
    err, a, b, c = homography_sampson_terms(points1, points2, H)
    e1, e2 = err[..., 0], err[..., 1]
    det = a * c - b * b
    return (c * e1 * e1 - 2.0 * b * e1 * e2 + a * e2 * e2) / (det + eps)
