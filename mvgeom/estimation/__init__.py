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

from .base import Estimator
from .disambiguate import EstimateNto1, HypothesisDisambiguator
from .epipolar import EssentialNister5, FundamentalLinear7, FundamentalLinear8, HomographyDLT, HomographyTLS
from .pnp import EPnP, IPPE, P3PFinsterwalder, P3PGrunert, PoseFromPairLinear6
from .triangulation import (
    Triangulate2ViewsMetricDLT,
    Triangulate2ViewsProjectiveDLT,
    TriangulateNViewsMetricDLT,
    TriangulateNViewsProjectiveDLT,
)

__all__ = [
    "EPnP",
    "IPPE",
    "EssentialNister5",
    "EstimateNto1",
    "Estimator",
    "FundamentalLinear7",
    "FundamentalLinear8",
    "HomographyDLT",
    "HomographyTLS",
    "HypothesisDisambiguator",
    "P3PFinsterwalder",
    "P3PGrunert",
    "PoseFromPairLinear6",
    "Triangulate2ViewsMetricDLT",
    "Triangulate2ViewsProjectiveDLT",
    "TriangulateNViewsMetricDLT",
    "TriangulateNViewsProjectiveDLT",
]
