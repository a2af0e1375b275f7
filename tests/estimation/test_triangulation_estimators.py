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
from mvgeom.estimation import (
    Triangulate2ViewsMetricDLT,
    Triangulate2ViewsProjectiveDLT,
    TriangulateNViewsMetricDLT,
    TriangulateNViewsProjectiveDLT,
)

from testing.base import BaseTester
from testing.geometry.create import generate_multi_view_scene, generate_two_view_random_scene


class TestTriangulateNViews(BaseTester):
    def test_metric(self, device):
        scene = generate_multi_view_scene(4, 3)
        poses = torch.cat([scene["R"], scene["t"]], dim=-1).to(device)
        point = TriangulateNViewsMetricDLT()(scene["points2d_norm"][:, 1].to(device), poses)
        assert point.shape == (3,)
        self.assert_close(point, scene["points3d"][0, 1].to(device), rtol=1e-6, atol=1e-6)

    def test_projective(self, device):
        scene = generate_multi_view_scene(3, 3)
        point = TriangulateNViewsProjectiveDLT()(scene["points2d"][:, 2].to(device), scene["P"].to(device))
        assert point.shape == (4,)
        self.assert_close(point.norm(), torch.tensor(1.0, device=device, dtype=torch.float64))
        assert point[3] > 0
        self.assert_close(point[:3] / point[3], scene["points3d"][0, 2].to(device), rtol=1e-6, atol=1e-6)

    def test_one_view(self, device):
        poses = torch.eye(3, 4, device=device, dtype=torch.float64)[None]
        with pytest.raises(DegenerateInputError):
            TriangulateNViewsMetricDLT()(torch.zeros(1, 2, device=device, dtype=torch.float64), poses)

    def test_view_count_mismatch(self, device):
        poses = torch.eye(3, 4, device=device, dtype=torch.float64).repeat(3, 1, 1)
        with pytest.raises(BaseError):
            TriangulateNViewsMetricDLT()(torch.zeros(2, 2, device=device, dtype=torch.float64), poses)


class TestTriangulate2Views(BaseTester):
    def test_metric(self, device):
        scene = generate_two_view_random_scene(4, device=device, dtype=torch.float64)
        pose_1to2 = torch.cat([scene["R2"], scene["t2"]], dim=-1)[0]
        point = Triangulate2ViewsMetricDLT()(scene["x1_norm"][0, 3], scene["x2_norm"][0, 3], pose_1to2)
        self.assert_close(point, scene["X"][0, 3], rtol=1e-6, atol=1e-6)

    def test_projective(self, device):
        scene = generate_two_view_random_scene(4, device=device, dtype=torch.float64)
        point = Triangulate2ViewsProjectiveDLT()(scene["x1"][0, 0], scene["x2"][0, 0], scene["P1"][0], scene["P2"][0])
        self.assert_close(point[:3] / point[3], scene["X"][0, 0], rtol=1e-6, atol=1e-6)

    def test_matches_nview(self, device):
        scene = generate_two_view_random_scene(4, device=device, dtype=torch.float64)
        pose_1to2 = torch.cat([scene["R2"], scene["t2"]], dim=-1)[0]
        obs1 = scene["x1_norm"][0, 0] + 1e-3
        obs2 = scene["x2_norm"][0, 0]
        two_view = Triangulate2ViewsMetricDLT()(obs1, obs2, pose_1to2)
        poses = torch.stack([torch.eye(3, 4, device=device, dtype=torch.float64), pose_1to2])
        nview = TriangulateNViewsMetricDLT()(torch.stack([obs1, obs2]), poses)
        self.assert_close(two_view, nview)
