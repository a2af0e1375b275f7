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

"""Sparse bundle adjustment: Levenberg-Marquardt with the Schur complement on the point blocks."""

import logging
import math
from typing import Optional, Tuple, Union

import torch

from mvgeom.bundle.residuals import BundleResidual
from mvgeom.bundle.structure import SceneStructureMetric, SceneStructureProjective
from mvgeom.config import BundleAdjustmentConfig
from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK
from mvgeom.optim import LeastSquaresProblem, LevenbergMarquardt, OptimizationResult

__all__ = ["BundleAdjustment", "SchurProblem"]

logger = logging.getLogger(__name__)

SceneStructure = Union[SceneStructureMetric, SceneStructureProjective]


def _damped(blocks: Tensor, damping: float) -> Tensor:
    r"""Add :math:`\lambda \, diag(A)` to a stack of symmetric blocks, with a floor on the diagonal."""
    diag = torch.diagonal(blocks, dim1=-2, dim2=-1)
    floor = torch.finfo(blocks.dtype).eps * diag.abs().max().clamp_min(1.0) if diag.numel() > 0 else 0.0
    return blocks + damping * torch.diag_embed(diag.clamp_min(floor))


class SchurProblem(LeastSquaresProblem):
    r"""Bundle adjustment normal equations solved by eliminating the point blocks.

    With :math:`U` the camera blocks, :math:`V` the point blocks and :math:`W` their coupling, the reduced
    camera system :math:`(U - W V^{-1} W^T) \delta_c = -g_c + W V^{-1} g_p` is solved densely and the point
    updates follow by back substitution. :math:`W` is kept as one :math:`(c, p)` block per observation, and the
    products :math:`W V^{-1} W^T` only visit the pairs of observations sharing a point. Views flagged ``known``
    do not take part in the camera system.

    Args:
        residual_function: the reprojection model of the scene.
        structure: the scene. It is only read.
    """

    def __init__(self, residual_function: BundleResidual, structure: SceneStructure) -> None:
        self.residual_function = residual_function
        self.cameras, self.points, self.intrinsics = residual_function.state(structure)
        obs = structure.observations
        self.view_idx = obs.view_idx.to(self.cameras.device)
        self.point_idx = obs.point_idx.to(self.cameras.device)
        self.pixels = obs.pixels.to(self.cameras)

        free = ~structure.known.to(self.cameras.device)
        self.free_views = torch.nonzero(free).flatten()
        slot = torch.full_like(free, -1, dtype=torch.long)
        slot[self.free_views] = torch.arange(self.free_views.numel(), device=slot.device)
        self.obs_slot = slot[self.view_idx]
        self.obs_free = self.obs_slot >= 0

        self.r = self._residuals(self.cameras, self.points)
        self._cost = float(self.r.pow(2).sum().item())
        self._system: Optional[Tuple[Tensor, ...]] = None

    @property
    def num_free_views(self) -> int:
        return self.free_views.numel()

    def _residuals(self, cameras: Tensor, points: Tensor) -> Tensor:
        intrinsics = self.intrinsics[self.view_idx] if self.intrinsics is not None else None
        projected = self.residual_function.project(cameras[self.view_idx], points[self.point_idx], intrinsics)
        return projected - self.pixels

    def _observation_jacobians(self) -> Tuple[Tensor, Tensor, Tensor]:
        """Return the residuals :math:`(M, 2)` and their Jacobians :math:`(M, 2, c)` and :math:`(M, 2, p)`."""
        rf = self.residual_function
        num_obs = self.view_idx.numel()
        camera_delta = torch.zeros(num_obs, rf.camera_block, dtype=self.cameras.dtype, device=self.cameras.device)
        point_delta = torch.zeros(num_obs, rf.point_block, dtype=self.cameras.dtype, device=self.cameras.device)
        camera_delta.requires_grad_(True)
        point_delta.requires_grad_(True)

        with torch.enable_grad():
            cameras, points = rf.retract(
                self.cameras[self.view_idx], self.points[self.point_idx], camera_delta, point_delta
            )
            intrinsics = self.intrinsics[self.view_idx] if self.intrinsics is not None else None
            residuals = rf.project(cameras, points, intrinsics) - self.pixels
            # every residual depends on its own observation only: one backward pass per coordinate
            rows_c, rows_p = [], []
            for k in range(2):
                grad_c, grad_p = torch.autograd.grad(
                    residuals[:, k].sum(), (camera_delta, point_delta), retain_graph=k == 0
                )
                rows_c.append(grad_c)
                rows_p.append(grad_p)
        return residuals.detach(), torch.stack(rows_c, dim=1), torch.stack(rows_p, dim=1)

    def cost(self) -> float:
        return self._cost

    def linearize(self) -> float:
        r, Jc, Jp = self._observation_jacobians()
        F, P = self.num_free_views, self.points.shape[0]
        c, p = Jc.shape[-1], Jp.shape[-1]
        dtype, device = r.dtype, r.device

        Jc = Jc[self.obs_free]
        slot = self.obs_slot[self.obs_free]
        r_free = r[self.obs_free]

        U = torch.zeros(F, c, c, dtype=dtype, device=device)
        U.index_add_(0, slot, Jc.transpose(-2, -1) @ Jc)
        g_c = torch.zeros(F, c, dtype=dtype, device=device)
        g_c.index_add_(0, slot, (Jc.transpose(-2, -1) @ r_free[..., None])[..., 0])

        V = torch.zeros(P, p, p, dtype=dtype, device=device)
        V.index_add_(0, self.point_idx, Jp.transpose(-2, -1) @ Jp)
        g_p = torch.zeros(P, p, dtype=dtype, device=device)
        g_p.index_add_(0, self.point_idx, (Jp.transpose(-2, -1) @ r[..., None])[..., 0])

        # one coupling block per observation of a free view
        W = Jc.transpose(-2, -1) @ Jp[self.obs_free]

        self._system = (U, V, W, g_c, g_p)
        gradient = torch.cat([g_c.flatten(), g_p.flatten()])
        return float(gradient.abs().max().item()) if gradient.numel() > 0 else 0.0

    def _shared_point_pairs(self) -> Tuple[Tensor, Tensor]:
        """Return the index pairs of the free observations that see the same point."""
        points = self.point_idx[self.obs_free]
        sorted_points, order = torch.sort(points)
        counts = torch.bincount(sorted_points, minlength=self.points.shape[0])
        starts = torch.cumsum(counts, 0) - counts

        partners = counts[sorted_points]
        first = torch.repeat_interleave(torch.arange(points.numel(), device=points.device), partners)
        offsets = torch.arange(first.numel(), device=points.device) - torch.repeat_interleave(
            torch.cumsum(partners, 0) - partners, partners
        )
        second = starts[sorted_points][first] + offsets
        return order[first], order[second]

    def propose(self, damping: float) -> Optional[Tuple[Tensor, Tensor]]:
        if self._system is None:
            raise RuntimeError("linearize must be called before propose.")
        U, V, W, g_c, g_p = self._system
        F = U.shape[0]
        c = U.shape[-1]

        V_inv, info = torch.linalg.inv_ex(_damped(V, damping))
        if bool((info != 0).any()):
            return None

        if F > 0:
            slot = self.obs_slot[self.obs_free]
            points = self.point_idx[self.obs_free]
            Y = W @ V_inv[points]

            k, l = self._shared_point_pairs()
            coupling = torch.zeros(F, F, c, c, dtype=U.dtype, device=U.device)
            coupling.index_put_((slot[k], slot[l]), Y[k] @ W[l].transpose(-2, -1), accumulate=True)
            S = torch.block_diag(*_damped(U, damping)) - coupling.transpose(1, 2).reshape(F * c, F * c)

            rhs = -g_c
            rhs = rhs.index_add(0, slot, (Y @ g_p[points][..., None])[..., 0])
            delta_c, info = torch.linalg.solve_ex(S, rhs.reshape(-1, 1))
            if int(info.item()) != 0:
                return None
            delta_c = delta_c.reshape(F, c)
            back = g_p.index_add(0, points, (W.transpose(-2, -1) @ delta_c[slot][..., None])[..., 0])
        else:
            delta_c = U.new_zeros(0, c)
            back = g_p
        delta_p = -(V_inv @ back[..., None])[..., 0]

        if not (bool(torch.isfinite(delta_c).all()) and bool(torch.isfinite(delta_p).all())):
            return None
        camera_delta = torch.zeros(self.cameras.shape[0], c, dtype=U.dtype, device=U.device)
        camera_delta[self.free_views] = delta_c
        return camera_delta, delta_p

    def _apply(self, proposal: Tuple[Tensor, Tensor]) -> Tuple[Tensor, Tensor]:
        camera_delta, point_delta = proposal
        return self.residual_function.retract(self.cameras, self.points, camera_delta, point_delta)

    def evaluate(self, proposal: Tuple[Tensor, Tensor]) -> float:
        self._candidate = self._apply(proposal)
        self._candidate_r = self._residuals(*self._candidate)
        return float(self._candidate_r.pow(2).sum().item())

    def accept(self, proposal: Tuple[Tensor, Tensor]) -> None:
        self.cameras, self.points = self._candidate
        self.r = self._candidate_r
        self._cost = float(self.r.pow(2).sum().item())

    def step_is_small(self, proposal: Tuple[Tensor, Tensor]) -> bool:
        eps = torch.finfo(self.cameras.dtype).eps
        step = math.hypot(float(proposal[0].norm().item()), float(proposal[1].norm().item()))
        scale = math.hypot(float(self.cameras.norm().item()), float(self.points.norm().item()))
        return step <= eps * (scale + eps)

    def params(self) -> Tensor:
        return torch.cat([self.cameras.flatten(), self.points.flatten()])


class BundleAdjustment:
    r"""Jointly refine the cameras and the points of a scene by minimising the reprojection error.

    The structure is updated in place only when the optimization succeeds: if it diverges the
    :class:`~mvgeom.core.exceptions.OptimizationDivergedError` propagates and the structure is untouched.

    Args:
        residual_function: :class:`MetricBundleResidual` or :class:`ProjectiveBundleResidual`.
        config: the stopping criteria and the damping schedule.
    """

    def __init__(self, residual_function: BundleResidual, config: Optional[BundleAdjustmentConfig] = None) -> None:
        self.residual_function = residual_function
        self.config = config if config is not None else BundleAdjustmentConfig()
        self.optimizer = LevenbergMarquardt(
            self.config.convergence,
            self.config.initial_damping,
            self.config.damping_factor,
            self.config.max_damping_retries,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(residual_function={self.residual_function}, config={self.config})"

    def optimize(self, structure: SceneStructure) -> OptimizationResult:
        """Refine ``structure`` in place and return the optimization summary."""
        MVG_CHECK(len(structure.observations) > 0, "The scene has no observation.")
        problem = SchurProblem(self.residual_function, structure)
        result = self.optimizer.run(problem)
        self.residual_function.commit(structure, problem.cameras, problem.points)
        logger.info(
            "Bundle adjustment of %d views, %d points, %d observations: cost %.6e -> %.6e in %d iterations",
            structure.num_views,
            structure.num_points,
            len(structure.observations),
            result.initial_cost,
            result.cost,
            result.iterations,
        )
        return result
