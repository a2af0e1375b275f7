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

"""Damped Gauss-Newton (Levenberg-Marquardt) driver shared by the refiners and bundle adjustment."""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import torch

from mvgeom.config import ConvergenceConfig
from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK
from mvgeom.core.exceptions import OptimizationDivergedError, PartialConvergence
from mvgeom.utils._compat import jacobian

__all__ = ["DenseLeastSquaresProblem", "LeastSquaresProblem", "LevenbergMarquardt", "OptimizationResult"]

logger = logging.getLogger(__name__)

ResidualFn = Callable[[Tensor], Tensor]


@dataclass
class OptimizationResult:
    """Outcome of a non-linear least squares optimization.

    Args:
        params: the final parameters.
        cost: the final sum of squared residuals.
        initial_cost: the sum of squared residuals at the initial parameters.
        iterations: number of accepted steps.
        converged: whether a tolerance was met before the iteration cap.
        cost_history: the cost after every accepted step, starting with the initial one.
    """

    params: Tensor
    cost: float
    initial_cost: float
    iterations: int
    converged: bool
    cost_history: List[float] = field(default_factory=list)


class LeastSquaresProblem:
    """Interface of a problem driven by :class:`LevenbergMarquardt`.

    A problem holds the current parameters. ``linearize`` prepares the normal equations around them and
    returns the infinity norm of the gradient, ``propose`` solves the damped system, ``evaluate`` returns
    the cost of a proposal and ``accept`` makes a proposal the current parameters.
    """

    def cost(self) -> float:
        raise NotImplementedError

    def linearize(self) -> float:
        raise NotImplementedError

    def propose(self, damping: float) -> Optional[Any]:
        raise NotImplementedError

    def evaluate(self, proposal: Any) -> float:
        raise NotImplementedError

    def accept(self, proposal: Any) -> None:
        raise NotImplementedError

    def step_is_small(self, proposal: Any) -> bool:
        return False

    def params(self) -> Tensor:
        raise NotImplementedError


def _sum_of_squares(residuals: Tensor) -> float:
    return float(residuals.pow(2).sum().item())


class DenseLeastSquaresProblem(LeastSquaresProblem):
    r"""Least squares problem over a flat parameter vector with a dense Jacobian.

    Args:
        residual_fn: maps the parameters :math:`(n,)` to the residuals (any shape, flattened to :math:`(m,)`).
        x0: the initial parameters with shape :math:`(n,)`.
        jacobian_fn: optional analytic Jacobian :math:`(m, n)`. Defaults to automatic differentiation.
    """

    def __init__(self, residual_fn: ResidualFn, x0: Tensor, jacobian_fn: Optional[ResidualFn] = None) -> None:
        MVG_CHECK(x0.dim() == 1, f"Parameters must be a flat vector. Got shape {tuple(x0.shape)}.")
        self.residual_fn = residual_fn
        self.jacobian_fn = jacobian_fn
        self.x = x0.detach().clone()
        self.r = self._residuals(self.x)
        self._cost = _sum_of_squares(self.r)
        self._JTJ: Optional[Tensor] = None
        self._g: Optional[Tensor] = None

    def _residuals(self, x: Tensor) -> Tensor:
        return self.residual_fn(x).reshape(-1)

    def _jacobian(self, x: Tensor) -> Tensor:
        if self.jacobian_fn is not None:
            return self.jacobian_fn(x).reshape(-1, x.shape[0])
        return jacobian(self._residuals, x).reshape(-1, x.shape[0])

    def cost(self) -> float:
        return self._cost

    def linearize(self) -> float:
        J = self._jacobian(self.x).detach()
        self._JTJ = J.transpose(-2, -1) @ J
        self._g = J.transpose(-2, -1) @ self.r
        return float(self._g.abs().max().item()) if self._g.numel() > 0 else 0.0

    def propose(self, damping: float) -> Optional[Tensor]:
        if self._JTJ is None or self._g is None:
            raise RuntimeError("linearize must be called before propose.")
        diag = torch.diagonal(self._JTJ)
        floor = torch.finfo(diag.dtype).eps * diag.abs().max().clamp_min(1.0)
        A = self._JTJ + damping * torch.diag_embed(diag.clamp_min(floor))
        delta, info = torch.linalg.solve_ex(A, -self._g[:, None])
        if int(info.item()) != 0 or not bool(torch.isfinite(delta).all()):
            return None
        return delta[:, 0]

    def evaluate(self, proposal: Tensor) -> float:
        self._candidate_r = self._residuals(self.x + proposal).detach()
        return _sum_of_squares(self._candidate_r)

    def accept(self, proposal: Tensor) -> None:
        self.x = self.x + proposal
        self.r = self._candidate_r
        self._cost = _sum_of_squares(self.r)

    def step_is_small(self, proposal: Tensor) -> bool:
        eps = torch.finfo(self.x.dtype).eps
        return float(proposal.norm().item()) <= eps * (float(self.x.norm().item()) + eps)

    def params(self) -> Tensor:
        return self.x


class LevenbergMarquardt:
    r"""Levenberg-Marquardt minimiser of a sum of squared residuals.

    Every iteration solves :math:`(J^T J + \lambda \, diag(J^T J)) \delta = -J^T r`. A step is accepted only
    when it does not increase the cost, after which the damping is divided by ``damping_factor``; rejected
    steps multiply it by ``damping_factor`` and are retried up to ``max_damping_retries`` times.

    The optimization stops when the infinity norm of the gradient :math:`J^T r` is below ``gtol``, when the
    relative decrease of the cost of an accepted step is below ``ftol``, or when no retry decreases the
    cost. Reaching ``max_iterations`` first issues a :class:`PartialConvergence` warning and returns the
    best parameters found.

    Args:
        config: the stopping criteria.
        initial_damping: the damping of the first iteration.
        damping_factor: the factor applied to the damping after every rejected or accepted step.
        max_damping_retries: number of damping increases tried within one iteration.

    Raises:
        OptimizationDivergedError: when every retry of an iteration gives a non-finite cost.

    Example:
        >>> lm = LevenbergMarquardt(ConvergenceConfig(max_iterations=50))
        >>> result = lm.minimize(lambda x: x - 2.0, torch.zeros(3, dtype=torch.float64))
        >>> torch.allclose(result.params, torch.full((3,), 2.0, dtype=torch.float64))
        True
    """

    def __init__(
        self,
        config: Optional[ConvergenceConfig] = None,
        initial_damping: float = 1e-3,
        damping_factor: float = 10.0,
        max_damping_retries: int = 10,
    ) -> None:
        MVG_CHECK(initial_damping > 0, "initial_damping must be positive.")
        MVG_CHECK(damping_factor > 1, "damping_factor must be larger than one.")
        MVG_CHECK(max_damping_retries >= 0, "max_damping_retries must be non-negative.")
        self.config = config if config is not None else ConvergenceConfig()
        self.initial_damping = initial_damping
        self.damping_factor = damping_factor
        self.max_damping_retries = max_damping_retries

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(config={self.config}, initial_damping={self.initial_damping}, "
            f"damping_factor={self.damping_factor}, max_damping_retries={self.max_damping_retries})"
        )

    def minimize(
        self, residual_fn: ResidualFn, x0: Tensor, jacobian_fn: Optional[ResidualFn] = None
    ) -> OptimizationResult:
        r"""Minimise :math:`\|r(x)\|^2` starting from ``x0``.

        Args:
            residual_fn: maps the parameters :math:`(n,)` to the residuals.
            x0: the initial parameters with shape :math:`(n,)`.
            jacobian_fn: optional analytic Jacobian of ``residual_fn`` with shape :math:`(m, n)`.

        Returns:
            the optimization result.
        """
        return self.run(DenseLeastSquaresProblem(residual_fn, x0, jacobian_fn))

    def run(self, problem: LeastSquaresProblem) -> OptimizationResult:
        """Drive a :class:`LeastSquaresProblem` until convergence."""
        cost = problem.cost()
        if not math.isfinite(cost):
            raise OptimizationDivergedError("The initial cost is not finite.", iterations=0, cost=cost)

        initial_cost = cost
        history = [cost]
        damping = self.initial_damping
        converged = False
        iterations = 0

        while iterations < self.config.max_iterations:
            if cost == 0.0 or problem.linearize() <= self.config.gtol:
                converged = True
                break

            accepted, any_finite = None, False
            new_cost = cost
            for _ in range(self.max_damping_retries + 1):
                proposal = problem.propose(damping)
                if proposal is not None:
                    new_cost = problem.evaluate(proposal)
                    if math.isfinite(new_cost):
                        any_finite = True
                        if new_cost <= cost:
                            accepted = proposal
                            break
                damping *= self.damping_factor

            if accepted is None:
                if not any_finite:
                    raise OptimizationDivergedError(
                        f"No finite cost after {self.max_damping_retries} damping retries.",
                        iterations=iterations,
                        cost=cost,
                    )
                # the cost cannot be decreased any further
                converged = True
                break

            small_step = problem.step_is_small(accepted)
            problem.accept(accepted)
            iterations += 1
            relative_decrease = (cost - new_cost) / max(cost, torch.finfo(torch.float64).tiny)
            cost = problem.cost()
            history.append(cost)
            damping = max(damping / self.damping_factor, 1e-15)
            logger.debug("LM iteration %d: cost %.6e, damping %.3e", iterations, cost, damping)

            if relative_decrease <= self.config.ftol or small_step:
                converged = True
                break

        if not converged:
            if cost == 0.0 or problem.linearize() <= self.config.gtol:
                converged = True
            else:
                warnings.warn(
                    f"Optimization stopped at the iteration cap ({self.config.max_iterations}) with cost {cost:.6e}.",
                    PartialConvergence,
                    stacklevel=2,
                )

        return OptimizationResult(
            params=problem.params(),
            cost=cost,
            initial_cost=initial_cost,
            iterations=iterations,
            converged=converged,
            cost_history=history,
        )
