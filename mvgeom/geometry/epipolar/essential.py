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

"""Module containing functionalities for the Essential matrix."""

from typing import Dict, List, Optional, Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.geometry.epipolar.fundamental import epipolar_design_matrix, normalize_frobenius
from mvgeom.geometry.epipolar.numeric import cross_product_matrix
from mvgeom.geometry.epipolar.projection import depth_from_point, projection_from_KRt
from mvgeom.geometry.epipolar.triangulation import triangulate_points
from mvgeom.utils.helpers import _torch_svd_cast, check_nullspace_dimension
from mvgeom.utils.misc import eye_like, vec_like

__all__ = [
    "decompose_essential_matrix",
    "essential_from_Rt",
    "essential_from_fundamental",
    "find_essential",
    "motion_from_essential",
    "motion_from_essential_choose_solution",
    "relative_camera_motion",
    "run_5point",
]

# Monomials in the unknowns (x, y, z) of E = x E0 + y E1 + z E2 + E3, as exponent tuples.
# The ten cubic monomials come first and are eliminated against the remaining basis.
_CUBIC = [(3, 0, 0), (2, 1, 0), (2, 0, 1), (1, 2, 0), (1, 1, 1), (1, 0, 2), (0, 3, 0), (0, 2, 1), (0, 1, 2), (0, 0, 3)]
_BASIS = [(2, 0, 0), (1, 1, 0), (1, 0, 1), (0, 2, 0), (0, 1, 1), (0, 0, 2), (1, 0, 0), (0, 1, 0), (0, 0, 1), (0, 0, 0)]

Poly = Dict[Tuple[int, int, int], Tensor]


def _pmul(p: Poly, q: Poly) -> Poly:
    out: Poly = {}
    for ea, ca in p.items():
        for eb, cb in q.items():
            e = (ea[0] + eb[0], ea[1] + eb[1], ea[2] + eb[2])
            out[e] = out[e] + ca * cb if e in out else ca * cb
    return out


def _padd(p: Poly, q: Poly, alpha: float = 1.0) -> Poly:
    out: Poly = dict(p)
    for e, c in q.items():
        out[e] = out[e] + alpha * c if e in out else alpha * c
    return out


def _pscale(p: Poly, alpha: float) -> Poly:
    return {e: alpha * c for e, c in p.items()}


def _nister_constraints(basis: Tensor) -> Tensor:
    r"""Build the ten polynomial constraints on the essential matrix spanned by ``basis``.

    Args:
        basis: null space matrices :math:`(B, 4, 3, 3)` combined as :math:`x E_0 + y E_1 + z E_2 + E_3`.

    Returns:
        the coefficient matrix :math:`(B, 10, 20)` over the monomials ``_CUBIC + _BASIS``. The first row is
        :math:`\det E = 0` and the other nine the entries of :math:`2 E E^T E - tr(E E^T) E = 0`.
    """
    units = [(1, 0, 0), (0, 1, 0), (0, 0, 1), (0, 0, 0)]
    E: List[List[Poly]] = [
        [{units[k]: basis[:, k, i, j] for k in range(4)} for j in range(3)] for i in range(3)
    ]

    EEt = [[_padd(_padd(_pmul(E[i][0], E[j][0]), _pmul(E[i][1], E[j][1])), _pmul(E[i][2], E[j][2])) for j in range(3)]
           for i in range(3)]
    trace = _padd(_padd(EEt[0][0], EEt[1][1]), EEt[2][2])

    rows: List[Poly] = []
    minor0 = _padd(_pmul(E[1][1], E[2][2]), _pmul(E[1][2], E[2][1]), -1.0)
    minor1 = _padd(_pmul(E[1][0], E[2][2]), _pmul(E[1][2], E[2][0]), -1.0)
    minor2 = _padd(_pmul(E[1][0], E[2][1]), _pmul(E[1][1], E[2][0]), -1.0)
    det = _padd(_padd(_pmul(E[0][0], minor0), _pmul(E[0][1], minor1), -1.0), _pmul(E[0][2], minor2))
    rows.append(det)

    for i in range(3):
        for j in range(3):
            eete = _padd(_padd(_pmul(EEt[i][0], E[0][j]), _pmul(EEt[i][1], E[1][j])), _pmul(EEt[i][2], E[2][j]))
            rows.append(_padd(_pscale(eete, 2.0), _pmul(trace, E[i][j]), -1.0))

    zeros = torch.zeros_like(basis[:, 0, 0, 0])
    return torch.stack([torch.stack([row.get(m, zeros) for m in _CUBIC + _BASIS], dim=-1) for row in rows], dim=-2)


def run_5point(
    points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None, tol: Optional[float] = None
) -> Tuple[Tensor, Tensor]:
    r"""Compute the essential matrix using Nister's 5-point algorithm.

    The four-dimensional null space of the epipolar constraints is parametrised as
    :math:`E = x E_0 + y E_1 + z E_2 + E_3`. Substituting it in :math:`\det E = 0` and
    :math:`2 E E^T E - tr(E E^T) E = 0` gives ten cubic equations. Eliminating the cubic monomials
    leaves the action matrix of the multiplication by :math:`x` on the quotient ring, whose real
    eigenvectors carry the up to ten solutions.

    Args:
        points1: A set of normalized points in the first image with a tensor shape :math:`(B, N, 2), N>=5`.
        points2: A set of normalized points in the second image with a tensor shape :math:`(B, N, 2), N>=5`.
        weights: Tensor containing the weights per point correspondence with a shape of :math:`(B, N)`.
        tol: relative imaginary part under which an eigenvalue is considered real.

    Returns:
        the candidate essential matrices with shape :math:`(B, 10, 3, 3)` and unit Frobenius norm, and the
        boolean mask :math:`(B, 10)` of the valid ones. Invalid slots are zero.

    Raises:
        DegenerateInputError: with fewer than five correspondences or a rank deficient system.
    """
    MVG_CHECK_SHAPE(points1, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(points1, points2)
    MVG_CHECK_SAMPLE_COUNT(points1, 5, what="correspondences")
    if weights is not None:
        MVG_CHECK_SHAPE(weights, ["B", "N"])
        MVG_CHECK_SAME_SHAPE(weights, points1[..., 0])
    if tol is None:
        tol = float(torch.finfo(torch.float64).eps) ** 0.5 * 10.0

    B = points1.shape[0]
    X = epipolar_design_matrix(points1, points2).to(torch.float64)
    if weights is not None:
        X = X * weights.to(torch.float64).clamp_min(0.0).sqrt()[..., None]
    check_nullspace_dimension(X, 4, "5-point essential matrix system")

    _, _, Vh = torch.linalg.svd(X)
    basis = Vh[..., -4:, :].reshape(B, 4, 3, 3)
    basis = normalize_frobenius(basis)

    M = _nister_constraints(basis)
    A, info = torch.linalg.solve_ex(M[..., :10], M[..., 10:])
    solvable = info == 0

    # multiplication by x maps basis monomial i to cubic monomial i (i < 6) or to another basis monomial
    action = torch.zeros(B, 10, 10, dtype=torch.float64, device=points1.device)
    action[:, :6] = -A[:, :6]
    action[:, 6, 0] = 1.0
    action[:, 7, 1] = 1.0
    action[:, 8, 2] = 1.0
    action[:, 9, 6] = 1.0
    action = torch.where(solvable[:, None, None], action, torch.zeros_like(action))

    eigvals, eigvecs = torch.linalg.eig(action)
    w = eigvecs[:, 9, :]
    w_ok = w.abs() > torch.finfo(torch.float64).eps
    safe_w = torch.where(w_ok, w, torch.ones_like(w))
    x = eigvals.real
    y = (eigvecs[:, 7, :] / safe_w).real
    z = (eigvecs[:, 8, :] / safe_w).real
    is_real = eigvals.imag.abs() <= tol * torch.clamp(eigvals.real.abs(), min=1.0)
    mask = is_real & w_ok & solvable[:, None]

    E = (
        x[..., None, None] * basis[:, None, 0]
        + y[..., None, None] * basis[:, None, 1]
        + z[..., None, None] * basis[:, None, 2]
        + basis[:, None, 3]
    )
    mask = mask & torch.isfinite(E).all(dim=-1).all(dim=-1)
    E = normalize_frobenius(torch.where(mask[..., None, None], E, torch.zeros_like(E)))
    return E.to(points1.dtype), mask


def find_essential(points1: Tensor, points2: Tensor, weights: Optional[Tensor] = None) -> Tensor:
    r"""Return the candidate essential matrices of :func:`run_5point` without their validity mask.

    Args:
        points1: normalized points in the first view :math:`(B, N, 2)` with :math:`N \geq 5`.
        points2: normalized points in the second view :math:`(B, N, 2)`.
        weights: weight per correspondence :math:`(B, N)`.

    Returns:
        the candidates :math:`(B, 10, 3, 3)`. Unused slots are zero.
    """
    return run_5point(points1, points2, weights)[0]


def essential_from_fundamental(F_mat: Tensor, K1: Tensor, K2: Tensor) -> Tensor:
    r"""Lift a fundamental matrix to an essential matrix, :math:`E = K_2^\top F K_1`.

    Args:
        F_mat: fundamental matrices :math:`(*, 3, 3)`.
        K1: intrinsics of the first view :math:`(*, 3, 3)`.
        K2: intrinsics of the second view :math:`(*, 3, 3)`.
    """
    for M in (F_mat, K1, K2):
        MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    return K2.transpose(-2, -1) @ F_mat @ K1


def decompose_essential_matrix(E_mat: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    r"""Split an essential matrix into its two rotations and its unit baseline.

    With :math:`E = U \Sigma V^\top`, the rotations are :math:`U W V^\top` and :math:`U W^\top V^\top`
    and the baseline is the last column of :math:`U`, known up to sign.

    Args:
       E_mat: essential matrices :math:`(*, 3, 3)`.

    Returns:
       ``(R1, R2, t)`` with shapes :math:`(*, 3, 3)`, :math:`(*, 3, 3)` and :math:`(*, 3, 1)`.
    """
    MVG_CHECK_SHAPE(E_mat, ["*", "3", "3"])

    U, _, V = _torch_svd_cast(E_mat)
    # flipping a factor only flips the sign of E
    U = U * torch.sign(torch.linalg.det(U))[..., None, None]
    Vt = V.transpose(-2, -1) * torch.sign(torch.linalg.det(V))[..., None, None]

    W = E_mat.new_tensor([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    return U @ W @ Vt, U @ W.transpose(-2, -1) @ Vt, U[..., 2:]


def essential_from_Rt(R1: Tensor, t1: Tensor, R2: Tensor, t2: Tensor) -> Tensor:
    r"""Essential matrix :math:`[t]_\times R` of the relative motion between two posed cameras.

    Args:
        R1: rotation of the first camera :math:`(*, 3, 3)`.
        t1: translation of the first camera :math:`(*, 3, 1)`.
        R2: rotation of the second camera :math:`(*, 3, 3)`.
        t2: translation of the second camera :math:`(*, 3, 1)`.

    Returns:
        the essential matrix :math:`(*, 3, 3)`.
    """
    R, t = relative_camera_motion(R1, t1, R2, t2)
    return cross_product_matrix(t[..., 0]) @ R


def motion_from_essential(E_mat: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Enumerate the four motions compatible with an essential matrix.

    They are ordered :math:`(R_1, t), (R_1, -t), (R_2, t), (R_2, -t)`.

    Returns:
        rotations :math:`(*, 4, 3, 3)` and translations :math:`(*, 4, 3, 1)`.
    """
    R1, R2, t = decompose_essential_matrix(E_mat)
    return torch.stack([R1, R1, R2, R2], dim=-3), torch.stack([t, -t, t, -t], dim=-3)


def motion_from_essential_choose_solution(
    E_mat: Tensor,
    K1: Tensor,
    K2: Tensor,
    x1: Tensor,
    x2: Tensor,
    mask: Optional[Tensor] = None,
) -> Tuple[Tensor, Tensor, Tensor]:
    r"""Pick the motion of an essential matrix that puts most triangulated points in front of both cameras.

    Args:
        E_mat: essential matrix :math:`(*, 3, 3)`, with or without a batch dimension.
        K1: intrinsics of the first view :math:`(*, 3, 3)`.
        K2: intrinsics of the second view :math:`(*, 3, 3)`.
        x1: pixels in the first view :math:`(*, N, 2)`.
        x2: pixels in the second view :math:`(*, N, 2)`.
        mask: correspondences allowed to vote :math:`(*, N)`.

    Returns:
        the rotation :math:`(*, 3, 3)`, the translation :math:`(*, 3, 1)` and the points triangulated with
        the winning motion :math:`(*, N, 3)`.
    """
    for M in (E_mat, K1, K2):
        MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    MVG_CHECK_SHAPE(x1, ["*", "N", "2"])
    MVG_CHECK_SHAPE(x2, ["*", "N", "2"])
    MVG_CHECK(E_mat.dim() == K1.dim() == K2.dim(), "E_mat, K1 and K2 must share their batch dimensions")
    if mask is not None:
        MVG_CHECK(mask.shape == x1.shape[:-1], "mask must have shape (*, N)")

    if E_mat.dim() == 2:
        single = (E_mat[None], K1[None], K2[None], x1[None], x2[None], None if mask is None else mask[None])
        R, t, X = motion_from_essential_choose_solution(*single)
        return R[0], t[0], X[0]

    def per_motion(x: Tensor) -> Tensor:
        return x[:, None].expand(-1, 4, *x.shape[1:])

    Rs, ts = motion_from_essential(E_mat)
    R_ref, t_ref = per_motion(eye_like(3, E_mat)), per_motion(vec_like(3, E_mat))
    P1 = projection_from_KRt(per_motion(K1), R_ref, t_ref)
    P2 = projection_from_KRt(per_motion(K2), Rs, ts)
    X = triangulate_points(P1, P2, per_motion(x1), per_motion(x2))

    in_front = (depth_from_point(R_ref, t_ref, X) > 0.0) & (depth_from_point(Rs, ts, X) > 0.0)
    if mask is not None:
        in_front &= mask[:, None]

    best = in_front.sum(-1).argmax(dim=-1)
    batch = torch.arange(E_mat.shape[0], device=E_mat.device)
    return Rs[batch, best], ts[batch, best], X[batch, best]


def relative_camera_motion(R1: Tensor, t1: Tensor, R2: Tensor, t2: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Motion of the second camera expressed in the frame of the first, :math:`T_2 T_1^{-1}`.

    Args:
        R1: rotation of the first camera :math:`(*, 3, 3)`.
        t1: translation of the first camera :math:`(*, 3, 1)`.
        R2: rotation of the second camera :math:`(*, 3, 3)`.
        t2: translation of the second camera :math:`(*, 3, 1)`.

    Returns:
        the relative rotation :math:`(*, 3, 3)` and translation :math:`(*, 3, 1)`.
    """
    MVG_CHECK_SHAPE(R1, ["*", "3", "3"])
    MVG_CHECK_SHAPE(R2, ["*", "3", "3"])
    MVG_CHECK_SHAPE(t1, ["*", "3", "1"])
    MVG_CHECK_SHAPE(t2, ["*", "3", "1"])

    R = R2 @ R1.transpose(-2, -1)
    return R, t2 - R @ t1
