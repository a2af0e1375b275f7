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
from mvgeom.geometry.linalg import transform_points
from mvgeom.geometry.epipolar.numeric import cross_product_matrix
from mvgeom.refine import (
    AlgebraicEpipolarResidual,
    EpipolarPointResidual,
    HomographySampsonResidual,
    HomographyTransferResidual,
    PointReprojectionResidual,
    PoseReprojectionResidual,
    ProjectivePointReprojectionResidual,
    SampsonEpipolarResidual,
)
from mvgeom.utils._compat import jacobian

from testing.base import BaseTester
from testing.geometry.create import (
    create_random_fundamental_matrix,
    generate_multi_view_scene,
    generate_pnp_scene,
    generate_two_view_random_scene,
)


class TestEpipolarResiduals(BaseTester):
    def test_sampson_matches_distance(self, device, dtype):
        points1 = torch.rand(10, 2, device=device, dtype=dtype)
        points2 = torch.rand(10, 2, device=device, dtype=dtype)
        F_mat = create_random_fundamental_matrix(1, std_val=0.1, device=device, dtype=dtype)[0]
        residual = SampsonEpipolarResidual(eps=0.0)(F_mat, points1, points2)
        assert residual.shape == (10, 1)
        expected = epi.sampson_epipolar_distance(points1, points2, F_mat, eps=0.0)
        self.assert_close(residual[:, 0].pow(2), expected, low_tolerance=True)

    def test_algebraic(self, device, dtype):
        points1 = torch.rand(6, 2, device=device, dtype=dtype)
        points2 = torch.rand(6, 2, device=device, dtype=dtype)
        F_mat = torch.rand(3, 3, device=device, dtype=dtype)
        residual = AlgebraicEpipolarResidual()(F_mat, points1, points2)
        self.assert_close(residual[:, 0].pow(2), epi.algebraic_epipolar_distance(points1, points2, F_mat))

    def test_zero_on_ground_truth(self, device):
        scene = generate_two_view_random_scene(device=device, dtype=torch.float64)
        residual = SampsonEpipolarResidual()(scene["E"][0], scene["x1_norm"][0], scene["x2_norm"][0])
        self.assert_close(residual, torch.zeros_like(residual), rtol=0.0, atol=1e-10)

    def test_differentiable(self, device):
        scene = generate_two_view_random_scene(10, device=device, dtype=torch.float64)
        x1, x2 = scene["x1"][0], scene["x2"][0]
        residual = SampsonEpipolarResidual()
        J = jacobian(lambda f: residual(f.reshape(3, 3), x1, x2).reshape(-1), scene["F"][0].reshape(-1))
        assert J.shape == (10, 9)
        assert torch.isfinite(J).all()


class TestHomographyResiduals(BaseTester):
    def test_transfer(self, device, dtype):
        H = torch.tensor([[1.0, 0.0, 2.0], [0.0, 1.0, -1.0], [0.0, 0.0, 1.0]], device=device, dtype=dtype)
        points1 = torch.rand(5, 2, device=device, dtype=dtype)
        residual = HomographyTransferResidual()(H, points1, points1)
        expected = torch.tensor([2.0, -1.0], device=device, dtype=dtype).expand(5, 2)
        self.assert_close(residual, expected)

    def test_sampson_matches_error(self, device):
        H = torch.tensor([[1.1, 0.1, 3.0], [-0.2, 0.9, 1.0], [1e-3, 2e-3, 1.0]], device=device, dtype=torch.float64)
        points1 = torch.rand(8, 2, device=device, dtype=torch.float64) * 10.0
        points2 = transform_points(H, points1) + 0.1 * torch.randn(8, 2, device=device, dtype=torch.float64)
        residual = HomographySampsonResidual(eps=0.0)(H, points1, points2)
        assert residual.shape == (8, 2)
        expected = epi.homography_sampson_error(points1, points2, H, eps=0.0)
        self.assert_close(residual.pow(2).sum(-1), expected, rtol=1e-8, atol=1e-10)


class TestReprojectionResiduals(BaseTester):
    def test_pose(self, device, dtype):
        scene = generate_pnp_scene(1, 12, device=device, dtype=dtype)
        residual = PoseReprojectionResidual()(scene["pose"][0], scene["world"][0], scene["img"][0])
        assert residual.shape == (12, 2)
        self.assert_close(residual, torch.zeros_like(residual), low_tolerance=True)

    def test_point(self, device):
        scene = generate_two_view_random_scene(device=device, dtype=torch.float64)
        poses = torch.cat([torch.cat([scene["R1"], scene["t1"]], -1), torch.cat([scene["R2"], scene["t2"]], -1)])
        observations = torch.stack([scene["x1_norm"][0, 3], scene["x2_norm"][0, 3]])
        residual = PointReprojectionResidual()(scene["X"][0, 3], observations, poses)
        assert residual.shape == (2, 2)
        self.assert_close(residual, torch.zeros_like(residual))

    def test_projective_point_scale_invariant(self, device):
        scene = generate_two_view_random_scene(device=device, dtype=torch.float64)
        cameras = torch.cat([scene["P1"], scene["P2"]])
        observations = torch.stack([scene["x1"][0, 0], scene["x2"][0, 0]])
        point = torch.cat([scene["X"][0, 0], torch.ones(1, device=device, dtype=torch.float64)])
        residual = ProjectivePointReprojectionResidual()(point, observations, cameras)
        self.assert_close(residual, torch.zeros_like(residual), rtol=0.0, atol=1e-8)
        self.assert_close(ProjectivePointReprojectionResidual()(-3.0 * point, observations, cameras), residual)

    def test_epipolar_point(self, device):
        scene = generate_multi_view_scene(4, 3)
        essentials = (cross_product_matrix(scene["t"][1:, :, 0]) @ scene["R"][1:]).to(device)
        observations = scene["points2d_norm"][1:, 1].to(device)
        point = scene["points3d"][0, 1].to(device)
        residual = EpipolarPointResidual()(point, observations, essentials)
        assert residual.shape == (3, 1)
        self.assert_close(residual, torch.zeros_like(residual), rtol=0.0, atol=1e-8)
        # only the direction of the point matters
        moved_point = point + torch.tensor([0.1, -0.1, 0.0], device=device, dtype=point.dtype)
        moved = EpipolarPointResidual()(moved_point, observations, essentials)
        assert moved.abs().max() > 1e-4
        self.assert_close(EpipolarPointResidual()(2.5 * moved_point, observations, essentials), moved)
