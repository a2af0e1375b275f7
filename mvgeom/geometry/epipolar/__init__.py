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

from ._metrics import (
    algebraic_epipolar_distance,
    epipolar_lines,
    homography_sampson_error,
    sampson_epipolar_distance,
    symmetrical_epipolar_distance,
)
from .essential import (
    decompose_essential_matrix,
    essential_from_fundamental,
    essential_from_Rt,
    find_essential,
    motion_from_essential,
    motion_from_essential_choose_solution,
    relative_camera_motion,
    run_5point,
)
from .fundamental import (
    compute_correspond_epilines,
    epipolar_design_matrix,
    find_fundamental,
    fundamental_from_essential,
    fundamental_from_projections,
    normalize_frobenius,
    normalize_points,
    normalize_transformation,
    run_7point,
    run_8point,
)
from .numeric import cross_product_matrix, enforce_rank2, project_to_essential
from .projection import depth_from_point, project_points, projection_from_KRt
from .triangulation import triangulate_points, triangulate_points_nview

__all__ = [
    "algebraic_epipolar_distance",
    "compute_correspond_epilines",
    "cross_product_matrix",
    "decompose_essential_matrix",
    "depth_from_point",
    "enforce_rank2",
    "epipolar_design_matrix",
    "epipolar_lines",
    "essential_from_Rt",
    "essential_from_fundamental",
    "find_essential",
    "find_fundamental",
    "fundamental_from_essential",
    "fundamental_from_projections",
    "homography_sampson_error",
    "motion_from_essential",
    "motion_from_essential_choose_solution",
    "normalize_frobenius",
    "normalize_points",
    "normalize_transformation",
    "project_points",
    "project_to_essential",
    "projection_from_KRt",
    "relative_camera_motion",
    "run_5point",
    "run_7point",
    "run_8point",
    "sampson_epipolar_distance",
    "symmetrical_epipolar_distance",
    "triangulate_points",
    "triangulate_points_nview",
]
