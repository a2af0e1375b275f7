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

import torch

import mvgeom.geometry.epipolar as epi
from mvgeom.bundle import MetricBundleResidual, ProjectiveBundleResidual

from testing.base import BaseTester
from testing.geometry.create import generate_bundle_scene, generate_multi_view_scene


class TestMetricBundleResidual(BaseTester):
    def test_project_pixels(self, device):
        scene = generate_multi_view_scene(2, 5)
        poses = torch.cat([scene["R"], scene["t"]], dim=-1).to(device)
        points = scene["points3d"][0].to(device)
        K = scene["K"].expand(2, 3, 3).to(device)
        cameras = poses[:, None].expand(2, 5, 3, 4).reshape(-1, 3, 4)
        intrinsics = K[:, None].expand(2, 5, 3, 3).reshape(-1, 3, 3)
        projected = MetricBundleResidual().project(cameras, points.repeat(2, 1), intrinsics)
        self.assert_close(projected, scene["points2d"].reshape(-1, 2).to(device))

    def test_project_normalized(self, device):
        scene = generate_multi_view_scene(2, 5)
        poses = torch.cat([scene["R"], scene["t"]], dim=-1).to(device)
        projected = MetricBundleResidual().project(poses[1:2].expand(5, 3, 4), scene["points3d"][0].to(device), None)
        self.assert_close(projected, scene["points2d_norm"][1].to(device))

    def test_retract_zero(self, device):
        structure, _ = generate_bundle_scene(3, 5, device=device)
        residual = MetricBundleResidual()
        cameras, points, intrinsics = residual.state(structure)
        new_cameras, new_points = residual.retract(
            cameras, points, torch.zeros(3, 6, device=device, dtype=torch.float64), torch.zeros_like(points)
        )
        self.assert_close(new_cameras, cameras)
        self.assert_close(new_points, points)
        assert intrinsics is not None

    def test_retract_keeps_rotation(self, device):
        structure, _ = generate_bundle_scene(3, 5, device=device)
        residual = MetricBundleResidual()
        cameras, points, _ = residual.state(structure)
        delta = torch.randn(3, 6, device=device, dtype=torch.float64)
        new_cameras, _ = residual.retract(cameras, points, delta, torch.zeros_like(points))
        self.assert_rotation(new_cameras[..., :3])
        self.assert_close(new_cameras[..., 3], cameras[..., 3] + delta[:, 3:])

    def test_commit_dtype(self, device):
        structure, _ = generate_bundle_scene(3, 5, device=device, dtype=torch.float32)
        residual = MetricBundleResidual()
        cameras, points, _ = residual.state(structure)
        assert cameras.dtype == torch.float64
        residual.commit(structure, cameras, points)
        assert structure.poses.dtype == torch.float32
        assert structure.points.dtype == torch.float32


class TestProjectiveBundleResidual(BaseTester):
    def test_project(self, device):
        scene = generate_multi_view_scene(2, 5)
        X = torch.cat([scene["points3d"][0], torch.ones(5, 1, dtype=torch.float64)], dim=-1).to(device)
        projected = ProjectiveBundleResidual().project(scene["P"][0:1].expand(5, 3, 4).to(device), -2.0 * X, None)
        self.assert_close(projected, scene["points2d"][0].to(device))

    def test_retract_normalizes(self, device):
        structure, _ = generate_bundle_scene(3, 5, projective=True, device=device)
        residual = ProjectiveBundleResidual()
        cameras, points, intrinsics = residual.state(structure)
        assert intrinsics is None
        new_cameras, new_points = residual.retract(
            cameras, points, torch.randn(3, 12, device=device, dtype=torch.float64), torch.randn_like(points)
        )
        self.assert_close(new_cameras.flatten(-2).norm(dim=-1), torch.ones(3, device=device, dtype=torch.float64))
        self.assert_close(new_points.norm(dim=-1), torch.ones(5, device=device, dtype=torch.float64))

    def test_block_sizes(self):
        assert (MetricBundleResidual.camera_block, MetricBundleResidual.point_block) == (6, 3)
        assert (ProjectiveBundleResidual.camera_block, ProjectiveBundleResidual.point_block) == (12, 4)
        assert repr(ProjectiveBundleResidual()) == "ProjectiveBundleResidual()"


def test_scene_is_consistent(device):
    structure, (poses, points) = generate_bundle_scene(3, 6, device=device)
    P = epi.projection_from_KRt(structure.intrinsics, poses[..., :3], poses[..., 3:])
    expected = epi.project_points(P, points.expand(3, -1, -1)).reshape(-1, 2)
    assert torch.allclose(structure.observations.pixels, expected)
