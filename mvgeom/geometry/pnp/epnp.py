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

r"""EPnP: an accurate :math:`O(n)` solution to the PnP problem (Lepetit, Moreno-Noguer and Fua, IJCV 2009)."""

from itertools import combinations
from typing import List, Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SAME_SHAPE, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.core.exceptions import DegenerateInputError
from mvgeom.geometry.pnp.rigid import find_rigid_transform, reprojection_error
from mvgeom.utils.helpers import degeneracy_tolerance

__all__ = ["solve_pnp_epnp"]


def _principal_axes(world_points: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """Return the centroid, the principal axes (columns, decreasing spread) and the spreads of the points."""
    centroid = world_points.mean(dim=-2, keepdim=True)
    centered = world_points - centroid
    cov = centered.transpose(-2, -1) @ centered / world_points.shape[-2]
    eigvals, eigvecs = torch.linalg.eigh(cov)
    spreads = eigvals.flip(-1).clamp_min(0.0).sqrt()
    return centroid, eigvecs.flip(-1), spreads


def _beta_products(num: int) -> List[Tuple[int, int]]:
    return [(k, l) for k in range(num) for l in range(k, num)]


def _linearized_betas(gram: Tensor, dist2: Tensor, num: int) -> Tensor:
    r"""Estimate the null space weights from the control point distances.

    Args:
        gram: the Gram matrices :math:`(B, P, D, D)` of the control point differences of the null space vectors.
        dist2: the squared world distances between the control points :math:`(B, P)`.
        num: number of null space vectors used.

    Returns:
        the weights :math:`(B, D)`, zero beyond ``num``.
    """
    B, _, D, _ = gram.shape
    if num == 1:
        g = gram[..., 0, 0]
        beta = (g.clamp_min(0.0).sqrt() * dist2.sqrt()).sum(-1) / g.sum(-1).clamp_min(torch.finfo(gram.dtype).tiny)
        out = [beta] + [torch.zeros_like(beta)] * (D - 1)
        return torch.stack(out, dim=-1)

    products = _beta_products(num)
    L = torch.stack([gram[..., k, l] * (1.0 if k == l else 2.0) for k, l in products], dim=-1)
    sol = torch.linalg.lstsq(L, dist2[..., None]).solution[..., 0]

    diag = {k: sol[:, i] for i, (k, l) in enumerate(products) if k == l}
    cross = {l: sol[:, i] for i, (k, l) in enumerate(products) if k == 0 and l > 0}
    beta0 = diag[0].abs().sqrt()
    betas = [beta0]
    for k in range(1, num):
        magnitude = diag[k].abs().sqrt()
        betas.append(torch.where(cross[k] * diag[0] < 0, -magnitude, magnitude))
    betas += [torch.zeros_like(beta0)] * (D - num)
    return torch.stack(betas, dim=-1)


def _gauss_newton_betas(gram: Tensor, dist2: Tensor, betas: Tensor, num_iterations: int) -> Tensor:
    r"""Refine the weights minimising :math:`\sum_p (\beta^T G_p \beta - d_p^2)^2`."""
    for _ in range(num_iterations):
        Gb = gram @ betas[:, None, :, None]  # (B, P, D, 1)
        residual = (betas[:, None, None, :] @ Gb)[..., 0, 0] - dist2
        J = 2.0 * Gb[..., 0]
        delta = torch.linalg.lstsq(J, -residual[..., None]).solution[..., 0]
        betas = betas + delta
    return betas


def _solve_control_points(
    world_points: Tensor, img_points: Tensor, num_control: int, num_iterations: int
) -> Tensor:
    """Run EPnP with 4 (general) or 3 (planar) control points and return the best pose per sample."""
    B, N, _ = world_points.shape
    centroid, axes, spreads = _principal_axes(world_points)
    axes, spreads = axes[..., : num_control - 1], spreads[..., : num_control - 1]

    # control points: centroid plus the scaled principal axes
    offsets = (axes * spreads[:, None, :]).transpose(-2, -1)
    control_world = torch.cat([centroid, centroid + offsets], dim=-2)  # (B, C, 3)

    # barycentric coordinates of the points with respect to the control points
    coords = ((world_points - centroid) @ axes) / spreads[:, None, :]
    alphas = torch.cat([1.0 - coords.sum(-1, keepdim=True), coords], dim=-1)  # (B, N, C)

    u, v = img_points[..., 0:1], img_points[..., 1:2]
    zeros = torch.zeros_like(alphas)
    row_u = torch.stack([alphas, zeros, -alphas * u], dim=-1).flatten(-2)
    row_v = torch.stack([zeros, alphas, -alphas * v], dim=-1).flatten(-2)
    M = torch.stack([row_u, row_v], dim=-2).reshape(B, 2 * N, 3 * num_control)

    _, eigvecs = torch.linalg.eigh(M.transpose(-2, -1) @ M)
    max_null = 3 if num_control == 4 else 2
    null = eigvecs[..., :max_null].transpose(-2, -1).reshape(B, max_null, num_control, 3)

    pairs = list(combinations(range(num_control), 2))
    idx_a = torch.tensor([a for a, _ in pairs], device=world_points.device)
    idx_b = torch.tensor([b for _, b in pairs], device=world_points.device)
    dist2 = (control_world[:, idx_a] - control_world[:, idx_b]).pow(2).sum(-1)  # (B, P)
    diffs = null[:, :, idx_a] - null[:, :, idx_b]  # (B, D, P, 3)
    gram = torch.einsum("bkpi,blpi->bpkl", diffs, diffs)  # (B, P, D, D)

    poses, errors = [], []
    for num in range(1, max_null + 1):
        betas = _linearized_betas(gram[..., :num, :num], dist2, num)
        betas = _gauss_newton_betas(gram[..., :num, :num], dist2, betas, num_iterations)
        control_cam = (betas[:, :, None, None] * null[:, :num]).sum(1)  # (B, C, 3)
        points_cam = alphas @ control_cam

        # the overall sign of the null space combination is fixed by cheirality
        flip = points_cam[..., 2].mean(-1) < 0
        points_cam = torch.where(flip[:, None, None], -points_cam, points_cam)

        pose = find_rigid_transform(world_points, points_cam)
        poses.append(pose)
        errors.append(reprojection_error(pose, world_points, img_points).mean(-1))

    poses_t, errors_t = torch.stack(poses, dim=1), torch.stack(errors, dim=1)
    errors_t = torch.where(torch.isfinite(errors_t), errors_t, torch.full_like(errors_t, float("inf")))
    best = errors_t.argmin(dim=1)
    return poses_t[torch.arange(B, device=world_points.device), best]


def solve_pnp_epnp(
    world_points: Tensor, img_points: Tensor, num_iterations: int = 10, magic_number: float = 0.1
) -> Tensor:
    r"""Solve the Perspective-n-Point problem with EPnP.

    The world points are expressed as weighted sums of virtual control points, placed at the centroid
    and along the principal axes of the points. Their camera coordinates lie in the null space of a
    :math:`2N \times 12` linear system and are recovered for one, two and three null space vectors by
    linearising the distance constraints between control points, followed by ``num_iterations``
    Gauss-Newton steps. The candidate with the lowest reprojection error is returned.

    When the smallest principal spread of the points is below ``magic_number`` times the largest one the
    points are treated as planar and three control points are used.

    Args:
        world_points: world points with shape :math:`(B, N, 3)`, :math:`N \geq 4`.
        img_points: normalized image coordinates with shape :math:`(B, N, 2)`.
        num_iterations: Gauss-Newton steps applied to the null space weights.
        magic_number: relative spread under which the points are considered planar, in :math:`(0, 1)`.

    Returns:
        the world to camera transformations with shape :math:`(B, 3, 4)`.

    Raises:
        DegenerateInputError: with fewer than four points or collinear world points.
    """
    MVG_CHECK_SHAPE(world_points, ["B", "N", "3"])
    MVG_CHECK_SHAPE(img_points, ["B", "N", "2"])
    MVG_CHECK_SAME_SHAPE(world_points[..., 0], img_points[..., 0])
    MVG_CHECK_SAMPLE_COUNT(world_points, 4, what="3d-2d correspondences")
    MVG_CHECK(num_iterations >= 0, "num_iterations must be non-negative.")
    MVG_CHECK(0.0 < magic_number < 1.0, "magic_number must lie in (0, 1).")

    world = world_points.to(torch.float64)
    img = img_points.to(torch.float64)

    _, _, spreads = _principal_axes(world)
    ratio = spreads[:, 1] / spreads[:, 0].clamp_min(torch.finfo(torch.float64).tiny)
    if torch.any(ratio < degeneracy_tolerance(world_points.dtype)):
        raise DegenerateInputError("The world points are collinear.", actual_value=ratio.min().item())

    planar = spreads[:, 2] < magic_number * spreads[:, 0]
    out = torch.empty(world.shape[0], 3, 4, dtype=torch.float64, device=world.device)
    if planar.any():
        out[planar] = _solve_control_points(world[planar], img[planar], 3, num_iterations)
    if (~planar).any():
        out[~planar] = _solve_control_points(world[~planar], img[~planar], 4, num_iterations)
    return out.to(world_points.dtype)
