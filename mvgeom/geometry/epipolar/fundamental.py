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
"""Fundamental matrix estimation and conversions."""

import math
from typing import Literal, Optional, Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.core.exceptions import UnsupportedAlgorithmError
from mvgeom.geometry.conversions import convert_points_to_homogeneous
from mvgeom.geometry.epipolar.numeric import enforce_rank2
from mvgeom.geometry.linalg import adjugate3x3
from mvgeom.geometry.solvers import find_real_roots
from mvgeom.utils.helpers import _torch_svd_cast, check_nullspace_dimension, safe_inverse_with_mask

__all__ = [
    "compute_correspond_epilines",
    "epipolar_design_matrix",
    "find_fundamental",
    "fundamental_from_essential",
    "fundamental_from_projections",
    "normalize_frobenius",
    "normalize_points",
    "normalize_transformation",
    "run_7point",
    "run_8point",
]


def normalize_points(points: Tensor, eps: float = 1e-8) -> Tuple[Tensor, Tensor]:
    r"""Hartley conditioning of a point set.

    The points are translated to their centroid and scaled so that their mean distance to it is
    :math:`\sqrt{2}`.

    Args:
       points: the points :math:`(B, N, 2)`.
       eps: added to the mean radius before dividing by it.

    Returns:
       the conditioned points :math:`(B, N, 2)` and the similarity :math:`T` :math:`(B, 3, 3)` with
       :math:`\tilde{x} = T x`.
    """
    MVG_CHECK_SHAPE(points, ["B", "N", "2"])

    centroid = points.mean(dim=1)
    centered = points - centroid[:, None]
    scale = math.sqrt(2.0) / (centered.norm(dim=-1).mean(dim=-1) + eps)

    T = torch.diag_embed(torch.stack([scale, scale, torch.ones_like(scale)], dim=-1))
    T[:, :2, 2] = -scale[:, None] * centroid
    return centered * scale[:, None, None], T


def normalize_transformation(M: Tensor, eps: float = 1e-8) -> Tensor:
    r"""Scale :math:`(*, R, C)` matrices so that their bottom-right entry is one.

    Matrices whose bottom-right entry is below ``eps`` in magnitude are returned unchanged.
    """
    MVG_CHECK(M.dim() >= 2, f"Expected a matrix of shape (*, R, C). Got {tuple(M.shape)}")
    corner = M[..., -1:, -1:]
    return M / torch.where(corner.abs() > eps, corner, torch.ones_like(corner))


def normalize_frobenius(M: Tensor, eps: float = 1e-12) -> Tensor:
    r"""Scale :math:`(*, R, C)` matrices to unit Frobenius norm."""
    norm = torch.linalg.matrix_norm(M, keepdim=True)
    return M / norm.clamp_min(eps)


def _positive_largest_entry(M: Tensor) -> Tensor:
    r"""Flip :math:`(*, R, C)` matrices so that their entry of largest magnitude is positive."""
    flat = M.flatten(-2)
    sign = flat.gather(-1, flat.abs().argmax(-1, keepdim=True)).sign()
    return M * sign[..., None]


def epipolar_design_matrix(points1: Tensor, points2: Tensor) -> Tensor:
    r"""Stack the epipolar constraints :math:`x_2^T M x_1 = 0` into a linear system.

    Row :math:`i` is :math:`\tilde{x}_2 \otimes \tilde{x}_1` of the homogeneous points, so that the system
    multiplies the row-major flattening of :math:`M`.

    Args:
        points1: points in the first image :math:`(B, N, 2)`.
        points2: points in the second image :math:`(B, N, 2)`.

    Returns:
        the design matrix with shape :math:`(B, N, 9)`.
    """
    p1 = convert_points_to_homogeneous(points1)
    p2 = convert_points_to_homogeneous(points2)
    return (p2[..., :, None] * p1[..., None, :]).flatten(-2)


def run_7point(points1: Tensor, points2: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Compute the fundamental matrix using the 7-point algorithm.

    The two-dimensional null space :math:`\{F_1, F_2\}` of the normalized linear system is intersected
    with the rank-2 constraint :math:`\det(\lambda F_1 + (1 - \lambda) F_2) = 0`, a cubic in :math:`\lambda`
    with one or three real roots.

    Args:
        points1: A set of points in the first image with a tensor shape :math:`(B, 7, 2)`.
        points2: A set of points in the second image with a tensor shape :math:`(B, 7, 2)`.

    Returns:
        the candidate fundamental matrices with shape :math:`(B, 3, 3, 3)` normalized to unit Frobenius
        norm, and a boolean mask :math:`(B, 3)` of the valid ones. Invalid slots are zero.

    Raises:
        DegenerateInputError: if the sample count differs from seven or the system has a null space
            larger than two.
    """
    MVG_CHECK_SHAPE(points1, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(points1, points2)
    MVG_CHECK_SAMPLE_COUNT(points1, 7, exact=True, what="correspondences")

    src, T1 = normalize_points(points1)
    dst, T2 = normalize_points(points2)

    X = epipolar_design_matrix(src, dst)
    check_nullspace_dimension(X, 2, "7-point fundamental matrix system")

    # X has rank seven: the last two right singular vectors span its null space
    _, _, V = _torch_svd_cast(X)
    F1 = V[..., -2].reshape(-1, 3, 3)
    F2 = V[..., -1].reshape(-1, 3, 3)

    # det(F2 + l * (F1 - F2)) = d3 l^3 + d2 l^2 + d1 l + d0
    M0, M1 = F2, F1 - F2
    d0 = torch.linalg.det(M0)
    d1 = (adjugate3x3(M0) @ M1).diagonal(dim1=-2, dim2=-1).sum(-1)
    d2 = (adjugate3x3(M1) @ M0).diagonal(dim1=-2, dim2=-1).sum(-1)
    d3 = torch.linalg.det(M1)
    roots, mask = find_real_roots(torch.stack([d3, d2, d1, d0], dim=-1))

    F = M0[:, None] + roots[..., None, None] * M1[:, None]
    F = T2.transpose(-2, -1)[:, None] @ F @ T1[:, None]
    F = normalize_frobenius(F)
    return torch.where(mask[..., None, None], F, torch.zeros_like(F)), mask


def run_8point(points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None) -> Tensor:
    r"""Estimate the fundamental matrix with the (weighted) normalized 8-point algorithm.

    The conditioned system is solved by its smallest right singular vector, the rank-2 constraint is
    enforced and the conditioning undone.

    Args:
        points1: points in the first image :math:`(B, N, 2)` with :math:`N \geq 8`.
        points2: points in the second image :math:`(B, N, 2)`.
        weights: non-negative weight per correspondence :math:`(B, N)`.

    Returns:
        the fundamental matrices :math:`(B, 3, 3)` with unit Frobenius norm and a positive entry of largest
        magnitude.

    Raises:
        DegenerateInputError: with fewer than eight correspondences or a rank deficient system.
    """
    MVG_CHECK_SHAPE(points1, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(points1, points2)
    MVG_CHECK_SAMPLE_COUNT(points1, 8, what="correspondences")
    if weights is not None:
        MVG_CHECK_SAME_SHAPE(weights, points1[..., 0])

    src, T1 = normalize_points(points1)
    dst, T2 = normalize_points(points2)

    A = epipolar_design_matrix(src, dst)
    if weights is not None:
        A = A * weights.clamp_min(0.0).sqrt()[..., None]
    check_nullspace_dimension(A, 1, "8-point fundamental matrix system")

    F_cond = _torch_svd_cast(A)[2][..., -1].reshape(-1, 3, 3)
    F_mat = normalize_frobenius(T2.transpose(-2, -1) @ enforce_rank2(F_cond) @ T1)
    return _positive_largest_entry(F_mat)


def find_fundamental(
    points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None, method: Literal["8POINT", "7POINT"] = "8POINT"
) -> Tensor:
    r"""Estimate the fundamental matrix with the 8-point or the 7-point algorithm.

    Args:
        points1: points in the first image :math:`(B, N, 2)`.
        points2: points in the second image :math:`(B, N, 2)`.
        weights: weight per correspondence :math:`(B, N)`, ignored by ``"7POINT"``.
        method: ``"8POINT"`` or ``"7POINT"``, case insensitive.

    Returns:
        :math:`(B, 3, 3)` for ``"8POINT"``. The three candidates :math:`(B, 3, 3, 3)` for ``"7POINT"``,
        unused slots being zero.

    Raises:
        UnsupportedAlgorithmError: for any other method.
    """
    solvers = {
        "7POINT": lambda: run_7point(points1, points2)[0],
        "8POINT": lambda: run_8point(points1, points2, weights),
    }
    solver = solvers.get(method.upper())
    if solver is None:
        raise UnsupportedAlgorithmError(f"Invalid method: {method}. Supported methods are {sorted(solvers)}.")
    return solver()


def compute_correspond_epilines(points: Tensor, F_mat: Tensor) -> Tensor:
    r"""Epipolar lines :math:`F x` in the other image, scaled so that :math:`a^2 + b^2 = 1`.

    Args:
        points: points :math:`(*, N, 2)` or homogeneous points :math:`(*, N, 3)`.
        F_mat: fundamental matrices :math:`(*, 3, 3)`.

    Returns:
        the lines :math:`(a, b, c)` of :math:`ax + by + c = 0` with shape :math:`(*, N, 3)`.
    """
    MVG_CHECK_SHAPE(points, ["*", "N", "DIM"])
    MVG_CHECK(points.shape[-1] in (2, 3), f"Expected 2D or homogeneous points. Got {tuple(points.shape)}")
    MVG_CHECK_SHAPE(F_mat, ["*", "3", "3"])
    points_h = convert_points_to_homogeneous(points) if points.shape[-1] == 2 else points

    lines = points_h @ F_mat.transpose(-2, -1)
    norm_sq = lines[..., :2].pow(2).sum(-1, keepdim=True)
    return lines * torch.where(norm_sq > 0.0, norm_sq.rsqrt(), torch.ones_like(norm_sq))


def fundamental_from_essential(E_mat: Tensor, K1: Tensor, K2: Tensor) -> Tensor:
    r"""Fundamental matrix :math:`K_2^{-\top} E K_1^{-1}` of two calibrated views.

    Args:
        E_mat: essential matrices :math:`(*, 3, 3)`.
        K1: intrinsics of the first view :math:`(*, 3, 3)`.
        K2: intrinsics of the second view :math:`(*, 3, 3)`.
    """
    for M in (E_mat, K1, K2):
        MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    return safe_inverse_with_mask(K2)[0].transpose(-2, -1) @ E_mat @ safe_inverse_with_mask(K1)[0]


def fundamental_from_projections(P1: Tensor, P2: Tensor) -> Tensor:
    r"""Fundamental matrix of two projective cameras.

    Entry :math:`F_{ij}` is the determinant of the :math:`4 \times 4` matrix stacking :math:`P_1` without
    row :math:`j` on top of :math:`P_2` without row :math:`i`, rows taken in cyclic order.

    Args:
        P1: first camera :math:`(*, 3, 4)`.
        P2: second camera :math:`(*, 3, 4)`.

    Returns:
         the fundamental matrix :math:`(*, 3, 3)`.
    """
    MVG_CHECK_SHAPE(P1, ["*", "3", "4"])
    MVG_CHECK_SHAPE(P2, ["*", "3", "4"])
    MVG_CHECK(P1.shape[:-2] == P2.shape[:-2], "P1 and P2 must share their batch dimensions")

    def without_row(P: Tensor, i: int) -> Tensor:
        return P[..., [(i + 1) % 3, (i + 2) % 3], :]

    blocks = [torch.cat([without_row(P1, j), without_row(P2, i)], dim=-2) for i in range(3) for j in range(3)]
    F_vec = torch.linalg.det(torch.stack(blocks, dim=-3))
    return F_vec.view(*P1.shape[:-2], 3, 3)
