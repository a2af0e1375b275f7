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

from .dlt import solve_pnp_dlt
from .epnp import solve_pnp_epnp
from .ippe import solve_pnp_ippe
from .p3p import solve_p3p_finsterwalder, solve_p3p_grunert
from .pair import solve_pose_from_pair
from .rigid import find_rigid_transform, reprojection_error, transform_to_camera

__all__ = [
    "find_rigid_transform",
    "reprojection_error",
    "solve_p3p_finsterwalder",
    "solve_p3p_grunert",
    "solve_pnp_dlt",
    "solve_pnp_epnp",
    "solve_pnp_ippe",
    "solve_pose_from_pair",
    "transform_to_camera",
]
