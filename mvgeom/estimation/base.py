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

from typing import List, Tuple

import torch

from mvgeom.core import Module, Tensor
from mvgeom.core.check import MVG_CHECK_IS_TENSOR, MVG_CHECK_SAME_SHAPE, MVG_CHECK_SHAPE

__all__ = ["Estimator"]


class Estimator(Module):
    r"""Base class of the algorithm objects producing a set of model hypotheses from samples.

    Attributes:
        min_samples: the number of samples the algorithm needs.
        max_hypotheses: the largest number of models the algorithm can return.
    """

    min_samples: int = 1
    max_hypotheses: int = 1

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(min_samples={self.min_samples}, max_hypotheses={self.max_hypotheses})"

    @staticmethod
    def _check_pairs(points1: Tensor, points2: Tensor, dims: Tuple[str, str] = ("2", "2")) -> None:
        MVG_CHECK_IS_TENSOR(points1)
        MVG_CHECK_IS_TENSOR(points2)
        MVG_CHECK_SHAPE(points1, ["N", dims[0]])
        MVG_CHECK_SHAPE(points2, ["N", dims[1]])
        MVG_CHECK_SAME_SHAPE(points1[:, 0], points2[:, 0])

    @staticmethod
    def _unbatch(models: Tensor, mask: Tensor) -> List[Tensor]:
        """Return the valid models of a single sample padded solution in generation order."""
        return [model for model, valid in zip(models[0], mask[0]) if bool(valid) and bool(torch.isfinite(model).all())]

    def forward(self, *data: Tensor) -> List[Tensor]:
        raise NotImplementedError
