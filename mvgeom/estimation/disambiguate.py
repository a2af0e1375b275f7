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

"""Selection of a single model among the hypotheses of a minimal solver."""

import logging
from typing import List, Optional, Tuple

import torch

from mvgeom.core import Module, Tensor
from mvgeom.core.check import MVG_CHECK
from mvgeom.core.exceptions import DegenerateInputError, InsufficientDisambiguationSamples
from mvgeom.estimation.base import Estimator
from mvgeom.refine.residuals import ResidualModel

__all__ = ["EstimateNto1", "HypothesisDisambiguator"]

logger = logging.getLogger(__name__)


class HypothesisDisambiguator:
    r"""Score a set of hypotheses on extra samples and pick the best one.

    Every hypothesis is scored with the squared residual norm of every extra sample, aggregated either
    as their sum or as minus the number of samples under ``threshold``. The lowest score wins; ties go
    to the hypothesis generated first.

    Args:
        residual_model: the residual evaluated for every hypothesis.
        aggregate: ``"sum"`` or ``"inliers"``.
        threshold: the squared residual bound of an inlier, required by ``"inliers"``.
    """

    def __init__(
        self, residual_model: ResidualModel, aggregate: str = "sum", threshold: Optional[float] = None
    ) -> None:
        MVG_CHECK(aggregate in ("sum", "inliers"), f"aggregate must be 'sum' or 'inliers'. Got {aggregate}.")
        MVG_CHECK(aggregate == "sum" or threshold is not None, "The inliers aggregate needs a threshold.")
        self.residual_model = residual_model
        self.aggregate = aggregate
        self.threshold = threshold

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(residual_model={self.residual_model}, aggregate={self.aggregate}, "
            f"threshold={self.threshold})"
        )

    def score(self, hypothesis: Tensor, *extra_data: Tensor) -> Tensor:
        errors = self.residual_model(hypothesis, *extra_data).pow(2).sum(-1)
        errors = torch.where(torch.isfinite(errors), errors, torch.full_like(errors, float("inf")))
        if self.aggregate == "sum":
            return errors.sum()
        return -(errors <= self.threshold).sum().to(errors.dtype)

    def select(self, hypotheses: List[Tensor], *extra_data: Tensor) -> Tuple[int, Tensor]:
        """Return the index of the best hypothesis and the scores of all of them.

        Raises:
            DegenerateInputError: if there is no hypothesis.
            InsufficientDisambiguationSamples: if there is no extra sample.
        """
        if len(hypotheses) == 0:
            raise DegenerateInputError("No hypothesis to choose from.")
        if len(extra_data) == 0 or extra_data[0].shape[0] == 0:
            raise InsufficientDisambiguationSamples("At least one extra sample is needed to disambiguate.")
        scores = torch.stack([self.score(hypothesis, *extra_data) for hypothesis in hypotheses])
        return int(scores.argmin().item()), scores


class EstimateNto1(Module):
    r"""Turn a multi-hypothesis estimator into one returning a single model.

    The first ``estimator.min_samples`` samples feed the estimator and the next ``num_extra`` ones pick
    the hypothesis. Estimators that produce a single hypothesis receive every sample instead.

    Args:
        estimator: the estimator returning a list of hypotheses.
        residual_model: the residual scoring the hypotheses.
        num_extra: number of samples used for the selection.

    Raises:
        InsufficientDisambiguationSamples: if ``num_extra`` is not positive while the estimator can return
            several hypotheses.
    """

    def __init__(self, estimator: Estimator, residual_model: ResidualModel, num_extra: int) -> None:
        super().__init__()
        if estimator.max_hypotheses > 1 and num_extra <= 0:
            raise InsufficientDisambiguationSamples(
                f"{estimator.__class__.__name__} returns up to {estimator.max_hypotheses} hypotheses and needs "
                f"extra samples to choose one. Got num_extra={num_extra}.",
                actual_value=num_extra,
            )
        self.estimator = estimator
        self.num_extra = num_extra
        self.disambiguator = HypothesisDisambiguator(residual_model)

    @property
    def min_samples(self) -> int:
        if self.estimator.max_hypotheses > 1:
            return self.estimator.min_samples + self.num_extra
        return self.estimator.min_samples

    @property
    def max_hypotheses(self) -> int:
        return 1

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(estimator={self.estimator}, num_extra={self.num_extra})"

    def forward(self, *data: Tensor) -> Tensor:
        if self.estimator.max_hypotheses == 1:
            hypotheses = self.estimator(*data)
            if len(hypotheses) == 0:
                raise DegenerateInputError("The estimator returned no hypothesis.")
            return hypotheses[0]

        n = self.estimator.min_samples
        sample = [d[:n] for d in data]
        extra = [d[n : n + self.num_extra] for d in data]
        hypotheses = self.estimator(*sample)
        index, scores = self.disambiguator.select(hypotheses, *extra)
        logger.debug("Selected hypothesis %d of %d with score %.6e", index, len(hypotheses), scores[index].item())
        return hypotheses[index]
