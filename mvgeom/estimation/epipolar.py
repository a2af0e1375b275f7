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

from typing import List

from mvgeom.core import Tensor
from mvgeom.estimation.base import Estimator
from mvgeom.geometry.epipolar import normalize_frobenius, project_to_essential, run_5point, run_7point, run_8point
from mvgeom.geometry.homography import find_homography_dlt, find_homography_tls

__all__ = ["EssentialNister5", "FundamentalLinear7", "FundamentalLinear8", "HomographyDLT", "HomographyTLS"]


class HomographyDLT(Estimator):
    r"""Homography from :math:`N \geq 4` correspondences with :func:`~mvgeom.geometry.find_homography_dlt`.

    Args:
        normalize_input: whether to condition the points before the linear solve. Disable it for input that
            is already in normalized image coordinates.
    """

    min_samples = 4
    max_hypotheses = 1

    def __init__(self, normalize_input: bool = True) -> None:
        super().__init__()
        self.normalize_input = normalize_input

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(normalize_input={self.normalize_input})"

    def forward(self, points1: Tensor, points2: Tensor) -> List[Tensor]:
        self._check_pairs(points1, points2)
        return [find_homography_dlt(points1[None], points2[None], normalize=self.normalize_input)[0]]


class HomographyTLS(Estimator):
    r"""Homography from :math:`N \geq 4` correspondences with :func:`~mvgeom.geometry.find_homography_tls`."""

    min_samples = 4
    max_hypotheses = 1

    def forward(self, points1: Tensor, points2: Tensor) -> List[Tensor]:
        self._check_pairs(points1, points2)
        return [find_homography_tls(points1[None], points2[None])[0]]


class FundamentalLinear8(Estimator):
    r"""Fundamental or essential matrix from :math:`N \geq 8` correspondences (normalized 8-point).

    Args:
        compute_fundamental: when ``False`` the solution is projected onto the essential manifold, which
            requires normalized image coordinates.

    Example:
        >>> points1, points2 = torch.rand(8, 2), torch.rand(8, 2)
        >>> len(FundamentalLinear8()(points1, points2))
        1
    """

    min_samples = 8
    max_hypotheses = 1

    def __init__(self, compute_fundamental: bool = True) -> None:
        super().__init__()
        self.compute_fundamental = compute_fundamental

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(compute_fundamental={self.compute_fundamental})"

    def forward(self, points1: Tensor, points2: Tensor) -> List[Tensor]:
        self._check_pairs(points1, points2)
        F = run_8point(points1[None], points2[None])[0]
        if not self.compute_fundamental:
            F = normalize_frobenius(project_to_essential(F))
        return [F]


class FundamentalLinear7(Estimator):
    r"""Up to three fundamental or essential matrices from exactly seven correspondences.

    Args:
        compute_fundamental: when ``False`` the solutions are projected onto the essential manifold.
    """

    min_samples = 7
    max_hypotheses = 3

    def __init__(self, compute_fundamental: bool = True) -> None:
        super().__init__()
        self.compute_fundamental = compute_fundamental

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(compute_fundamental={self.compute_fundamental})"

    def forward(self, points1: Tensor, points2: Tensor) -> List[Tensor]:
        self._check_pairs(points1, points2)
        F, mask = run_7point(points1[None], points2[None])
        if not self.compute_fundamental:
            F = normalize_frobenius(project_to_essential(F))
        return self._unbatch(F, mask)


class EssentialNister5(Estimator):
    r"""Up to ten essential matrices from :math:`N \geq 5` correspondences in normalized image coordinates."""

    min_samples = 5
    max_hypotheses = 10

    def forward(self, points1: Tensor, points2: Tensor) -> List[Tensor]:
        self._check_pairs(points1, points2)
        E, mask = run_5point(points1[None], points2[None])
        return self._unbatch(E, mask)
