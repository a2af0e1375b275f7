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

r"""Minimal solvers of the Perspective-3-Point problem.

Both solvers follow the review of Haralick et al., "Review and analysis of solutions of the three
point perspective pose estimation problem", IJCV 1994. With :math:`s_1, s_2, s_3` the distances from
the camera centre to the three points, :math:`a, b, c` the distances between points 2-3, 1-3 and 1-2,
and :math:`\alpha, \beta, \gamma` the angles between the matching bearing vectors, the law of cosines
reads

.. math::

    a^2 = s_2^2 + s_3^2 - 2 s_2 s_3 \cos\alpha \\
    b^2 = s_1^2 + s_3^2 - 2 s_1 s_3 \cos\beta \\
    c^2 = s_1^2 + s_2^2 - 2 s_1 s_2 \cos\gamma

and both methods solve it for the ratios :math:`u = s_2 / s_1` and :math:`v = s_3 / s_1`.
"""

from typing import Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.core.exceptions import DegenerateInputError
from mvgeom.geometry.conversions import convert_points_to_homogeneous
from mvgeom.geometry.linalg import adjugate3x3
from mvgeom.geometry.pnp.rigid import find_rigid_transform
from mvgeom.geometry.solvers import find_real_roots, poly_add, poly_mul, solve_quadratic
from mvgeom.utils.helpers import degeneracy_tolerance

__all__ = ["solve_p3p_finsterwalder", "solve_p3p_grunert"]


def _check_p3p_input(world_points: Tensor, img_points: Tensor) -> None:
    MVG_CHECK_SHAPE(world_points, ["B", "N", "3"])
    MVG_CHECK_SHAPE(img_points, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(world_points[..., 0], img_points[..., 0])
    MVG_CHECK_SAMPLE_COUNT(world_points, 3, exact=True, what="3d-2d correspondences")

    e1 = world_points[:, 1] - world_points[:, 0]
    e2 = world_points[:, 2] - world_points[:, 0]
    area = torch.linalg.cross(e1, e2, dim=-1).norm(dim=-1)
    scale = torch.stack([e1.norm(dim=-1), e2.norm(dim=-1)], dim=-1).amax(-1).pow(2)
    ratio = area / scale.clamp_min(torch.finfo(world_points.dtype).tiny)
    if torch.any(ratio < degeneracy_tolerance(world_points.dtype)):
        raise DegenerateInputError(
            "The three world points are collinear or coincident.", actual_value=ratio.min().item()
        )


def _triangle_geometry(world_points: Tensor, img_points: Tensor) -> Tuple[Tensor, ...]:
    """Return the bearing vectors, squared side lengths and angle cosines of the problem in fp64."""
    X = world_points.to(torch.float64)
    bearings = convert_points_to_homogeneous(img_points.to(torch.float64))
    bearings = bearings / bearings.norm(dim=-1, keepdim=True)

    a2 = (X[:, 1] - X[:, 2]).pow(2).sum(-1)
    b2 = (X[:, 0] - X[:, 2]).pow(2).sum(-1)
    c2 = (X[:, 0] - X[:, 1]).pow(2).sum(-1)

    cos_alpha = (bearings[:, 1] * bearings[:, 2]).sum(-1)
    cos_beta = (bearings[:, 0] * bearings[:, 2]).sum(-1)
    cos_gamma = (bearings[:, 0] * bearings[:, 1]).sum(-1)
    return bearings, a2, b2, c2, cos_alpha, cos_beta, cos_gamma


def _poses_from_ratios(
    world_points: Tensor, bearings: Tensor, u: Tensor, v: Tensor, s1_squared: Tensor, mask: Tensor
) -> Tuple[Tensor, Tensor]:
    r"""Recover the camera poses from the distance ratios :math:`(B, K)` of every candidate."""
    mask = mask & (u > 0) & (v > 0) & (s1_squared > 0) & torch.isfinite(s1_squared)
    s1 = torch.where(mask, s1_squared, torch.ones_like(s1_squared)).sqrt()
    u = torch.where(mask, u, torch.ones_like(u))
    v = torch.where(mask, v, torch.ones_like(v))

    distances = torch.stack([s1, u * s1, v * s1], dim=-1)  # (B, K, 3)
    points_cam = distances[..., None] * bearings[:, None]  # (B, K, 3, 3)

    K = u.shape[-1]
    world = world_points.to(torch.float64)[:, None].expand(-1, K, -1, -1)
    poses = find_rigid_transform(world, points_cam)
    poses = torch.where(mask[..., None, None], poses, torch.zeros_like(poses))
    return poses.to(world_points.dtype), mask


def solve_p3p_grunert(world_points: Tensor, img_points: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Solve the P3P problem with Grunert's method.

    Eliminating :math:`u` from the three equations yields :math:`u = N(v) / D(v)` with :math:`N` quadratic and
    :math:`D` linear in :math:`v`. Substituting it back gives a quartic in :math:`v`, assembled here by
    polynomial algebra and solved with :func:`find_real_roots`.

    Args:
        world_points: three world points per sample with shape :math:`(B, 3, 3)`.
        img_points: their normalized image coordinates with shape :math:`(B, 3, 2)`.

    Returns:
        - the candidate world to camera poses with shape :math:`(B, 4, 3, 4)`.
        - the mask of the valid candidates with shape :math:`(B, 4)`.

    Raises:
        DegenerateInputError: if the world points are collinear.
    """
    _check_p3p_input(world_points, img_points)
    bearings, a2, b2, c2, ca, cb, cg = _triangle_geometry(world_points, img_points)
    ones = torch.ones_like(a2)

    # N(v) = (a2 - c2 - b2) v^2 - 2 (a2 - c2) cos(beta) v + b2 + a2 - c2
    amc = a2 - c2
    N = torch.stack([amc - b2, -2.0 * amc * cb, b2 + amc], dim=-1)
    # D(v) = 2 b2 (cos(gamma) - v cos(alpha))
    D = torch.stack([-2.0 * b2 * ca, 2.0 * b2 * cg], dim=-1)
    # q(v) = 1 + v^2 - 2 v cos(beta)
    q = torch.stack([ones, -2.0 * cb, ones], dim=-1)

    # b2 (N^2 - 2 cos(gamma) N D + D^2) - c2 q D^2 = 0
    NN = poly_mul(N, N)
    ND = poly_mul(N, D)
    DD = poly_mul(D, D)
    quartic = poly_add(poly_add(NN, -2.0 * cg[:, None] * ND), DD) * b2[:, None]
    quartic = poly_add(quartic, -c2[:, None] * poly_mul(q, DD))

    v, mask = find_real_roots(quartic)

    Dv = D[:, :1] * v + D[:, 1:]
    Nv = (N[:, :1] * v + N[:, 1:2]) * v + N[:, 2:]
    valid_D = Dv.abs() > torch.finfo(torch.float64).eps * D.abs().amax(-1, keepdim=True)
    u = Nv / torch.where(valid_D, Dv, torch.ones_like(Dv))
    s1_squared = b2[:, None] / (1.0 + v * v - 2.0 * v * cb[:, None])
    return _poses_from_ratios(world_points, bearings, u, v, s1_squared, mask & valid_D)


def solve_p3p_finsterwalder(world_points: Tensor, img_points: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Solve the P3P problem with Finsterwalder's method.

    The two conics

    .. math::

        G_1 = b^2 (u^2 + v^2 - 2 u v \cos\alpha) - a^2 (1 + v^2 - 2 v \cos\beta) \\
        G_2 = b^2 (1 + u^2 - 2 u \cos\gamma) - c^2 (1 + v^2 - 2 v \cos\beta)

    are combined into the pencil :math:`G_1 + \lambda G_2`. A real root of the cubic making the pencil
    degenerate splits it into two lines :math:`v = m u + n`, each intersected with :math:`G_2` through a
    quadratic equation.

    Args:
        world_points: three world points per sample with shape :math:`(B, 3, 3)`.
        img_points: their normalized image coordinates with shape :math:`(B, 3, 2)`.

    Returns:
        - the candidate world to camera poses with shape :math:`(B, 4, 3, 4)`.
        - the mask of the valid candidates with shape :math:`(B, 4)`.

    Raises:
        DegenerateInputError: if the world points are collinear.
    """
    _check_p3p_input(world_points, img_points)
    bearings, a2, b2, c2, ca, cb, cg = _triangle_geometry(world_points, img_points)
    zeros = torch.zeros_like(a2)

    # symmetric matrices of the conics in (u, v, 1)
    G1 = torch.stack(
        [b2, -b2 * ca, zeros, -b2 * ca, b2 - a2, a2 * cb, zeros, a2 * cb, -a2], dim=-1
    ).view(-1, 3, 3)
    G2 = torch.stack(
        [b2, zeros, -b2 * cg, zeros, -c2, c2 * cb, -b2 * cg, c2 * cb, b2 - c2], dim=-1
    ).view(-1, 3, 3)

    # det(G1 + l G2) = det(G2) l^3 + tr(G1 adj(G2)) l^2 + tr(adj(G1) G2) l + det(G1)
    adj1, adj2 = adjugate3x3(G1), adjugate3x3(G2)
    cubic = torch.stack(
        [
            torch.linalg.det(G2),
            torch.diagonal(G1 @ adj2, dim1=-2, dim2=-1).sum(-1),
            torch.diagonal(adj1 @ G2, dim1=-2, dim2=-1).sum(-1),
            torch.linalg.det(G1),
        ],
        dim=-1,
    )
    lambdas, lambda_mask = find_real_roots(cubic)
    # the root of largest magnitude gives the best conditioned pair of lines
    score = torch.where(lambda_mask, lambdas.abs(), torch.full_like(lambdas, -1.0))
    lam = lambdas.gather(-1, score.argmax(-1, keepdim=True))[:, 0]
    has_root = lambda_mask.any(-1)

    C = G1 + lam[:, None, None] * G2
    A, B, Cv = C[:, 0, 0], 2.0 * C[:, 0, 1], C[:, 1, 1]
    Du, Ev, F = 2.0 * C[:, 0, 2], 2.0 * C[:, 1, 2], C[:, 2, 2]

    # A u^2 + B u v + C v^2 + D u + E v + F = (2 C v + B u + E)^2 - (p u + q)^2 over 4 C
    p2 = B * B - 4.0 * A * Cv
    q2 = Ev * Ev - 4.0 * Cv * F
    p = p2.clamp_min(0.0).sqrt()
    q = q2.clamp_min(0.0).sqrt()
    cross = B * Ev - 2.0 * Cv * Du
    q = torch.where(cross < 0, -q, q)

    tiny = torch.finfo(torch.float64).eps
    scale = C.abs().flatten(-2).amax(-1)
    valid_c = (Cv.abs() > tiny * scale) & (p2 >= -tiny * scale * scale) & has_root
    safe_c = torch.where(valid_c, Cv, torch.ones_like(Cv))

    us, vs, masks = [], [], []
    for sign in (1.0, -1.0):
        m = (-B + sign * p) / (2.0 * safe_c)
        n = (-Ev + sign * q) / (2.0 * safe_c)
        # G2 restricted to v = m u + n
        quad = torch.stack(
            [
                b2 - c2 * m * m,
                -2.0 * b2 * cg - 2.0 * c2 * m * n + 2.0 * c2 * m * cb,
                b2 - c2 * (1.0 + n * n - 2.0 * n * cb),
            ],
            dim=-1,
        )
        u, mask = solve_quadratic(quad)
        us.append(u)
        vs.append(m[:, None] * u + n[:, None])
        masks.append(mask & valid_c[:, None])

    u, v, mask = torch.cat(us, dim=-1), torch.cat(vs, dim=-1), torch.cat(masks, dim=-1)
    s1_squared = c2[:, None] / (1.0 + u * u - 2.0 * u * cg[:, None])
    return _poses_from_ratios(world_points, bearings, u, v, s1_squared, mask)
