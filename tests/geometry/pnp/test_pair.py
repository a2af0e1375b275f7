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

import pytest
import torch

from mvgeom.core.exceptions import BaseError, DegenerateInputError
from mvgeom.geometry.conversions import convert_points_to_homogeneous
from mvgeom.geometry.pnp import solve_pose_from_pair

from testing.base import BaseTester
from testing.geometry.create import generate_two_view_random_scene


def _motion(scene):
    return torch.cat([scene["R2"], scene["t2"]], dim=-1)


class TestSolvePoseFromPair(BaseTester):
    @pytest.mark.parametrize("num_points", [6, 20])
    def test_exact(self, num_points, device):
        scene = generate_two_view_random_scene(num_points, device=device, dtype=torch.float64)
        pose = solve_pose_from_pair(scene["x2_norm"], scene["X"])
        assert pose.shape == (1, 3, 4)
        self.assert_close(pose, _motion(scene), rtol=1e-6, atol=1e-6)
        self.assert_rotation(pose[..., :3])

    def test_homogeneous_points(self, device):
        scene = generate_two_view_random_scene(10, device=device, dtype=torch.float64)
        scale = torch.linspace(-2.0, 3.0, 10, device=device, dtype=torch.float64)
        points = convert_points_to_homogeneous(scene["X"]) * scale[None, :, None]
        pose = solve_pose_from_pair(scene["x2_norm"], points)
        self.assert_close(pose, _motion(scene), rtol=1e-6, atol=1e-6)

    def test_batch(self, device):
        scenes = [generate_two_view_random_scene(8, device=device, dtype=torch.float64) for _ in range(3)]
        points2 = torch.cat([s["x2_norm"] for s in scenes])
        points3d = torch.cat([s["X"] for s in scenes])
        expected = torch.cat([_motion(s) for s in scenes])
        self.assert_close(solve_pose_from_pair(points2, points3d), expected, rtol=1e-6, atol=1e-6)

    def test_too_few_points(self, device, dtype):
        with pytest.raises(DegenerateInputError):
            solve_pose_from_pair(
                torch.rand(1, 5, 2, device=device, dtype=dtype), torch.rand(1, 5, 3, device=device, dtype=dtype)
            )

    def test_coplanar(self, device):
        dtype = torch.float64
        xy = torch.rand(1, 10, 2, device=device, dtype=dtype)
        points3d = torch.cat([xy, torch.full_like(xy[..., :1], 5.0)], dim=-1)
        points2 = (points3d[..., :2] + 0.3) / points3d[..., 2:]
        with pytest.raises(DegenerateInputError):
            solve_pose_from_pair(points2, points3d)

    def test_wrong_point_dimension(self, device, dtype):
        with pytest.raises(BaseError):
            solve_pose_from_pair(
                torch.rand(1, 6, 2, device=device, dtype=dtype), torch.rand(1, 6, 5, device=device, dtype=dtype)
            )
