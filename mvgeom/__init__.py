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

from . import bundle, config, constants, core, estimation, factory, geometry, optim, refine, utils
from .bundle import BundleAdjustment, SceneObservations, SceneStructureMetric, SceneStructureProjective
from .config import BundleAdjustmentConfig, ConvergenceConfig, EPnPConfig, TriangulationConfig
from .constants import EpipolarAlgorithm, PnPAlgorithm, ResidualType, TriangulationMode

# Version variable
__version__ = "0.1.0"

__all__ = [
    "BundleAdjustment",
    "BundleAdjustmentConfig",
    "ConvergenceConfig",
    "EPnPConfig",
    "EpipolarAlgorithm",
    "PnPAlgorithm",
    "ResidualType",
    "SceneObservations",
    "SceneStructureMetric",
    "SceneStructureProjective",
    "TriangulationConfig",
    "TriangulationMode",
    "bundle",
    "config",
    "constants",
    "core",
    "estimation",
    "factory",
    "geometry",
    "optim",
    "refine",
    "utils",
]
