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

import logging
from typing import List, Union

from mvgeom.core import Module, Tensor
from mvgeom.core.check import MVG_CHECK
from mvgeom.core.exceptions import DegenerateInputError, OptimizationDivergedError
from mvgeom.refine.refiners import LeastSquaresRefiner

__all__ = ["EstimateThenRefine"]

logger = logging.getLogger(__name__)


class EstimateThenRefine(Module):
    r"""Run an estimator that produces a single model, then polish it with a refiner.

    The estimator is called with the data and may return a tensor or a list holding one tensor. When the
    refiner diverges the estimate is returned unchanged and a warning is logged.

    Args:
        estimator: the module producing the initial model.
        refiner: the refiner applied to it with the same data.

    Example:
        >>> from mvgeom.estimation import TriangulateNViewsMetricDLT
        >>> from mvgeom.refine import TriangulationRefinerMetric
        >>> triangulate = EstimateThenRefine(TriangulateNViewsMetricDLT(), TriangulationRefinerMetric())
    """

    def __init__(self, estimator: Module, refiner: LeastSquaresRefiner) -> None:
        super().__init__()
        self.estimator = estimator
        self.refiner = refiner

    @property
    def min_samples(self) -> int:
        return getattr(self.estimator, "min_samples", 1)

    @property
    def max_hypotheses(self) -> int:
        return 1

    def forward(self, *data: Tensor) -> Tensor:
        estimate: Union[Tensor, List[Tensor]] = self.estimator(*data)
        if isinstance(estimate, list):
            if len(estimate) == 0:
                raise DegenerateInputError("The estimator returned no hypothesis.")
            MVG_CHECK(
                len(estimate) == 1,
                f"Expected a single hypothesis, got {len(estimate)}. Disambiguate with EstimateNto1 first.",
            )
            estimate = estimate[0]

        try:
            refined, result = self.refiner(estimate, *data)
        except OptimizationDivergedError as err:
            logger.warning("Refinement diverged after %d iterations, keeping the estimate: %s", err.iterations, err)
            return estimate

        logger.debug(
            "Refined %s: cost %.6e -> %.6e in %d iterations",
            self.estimator.__class__.__name__,
            result.initial_cost,
            result.cost,
            result.iterations,
        )
        return refined
