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

import mvgeom.geometry.epipolar as epi

from testing.base import BaseTester


class TestSkewSymmetric(BaseTester):
    def test_smoke(self, device, dtype):
        vec = torch.rand(1, 3, device=device, dtype=dtype)
        cross_product_matrix = epi.cross_product_matrix(vec)
        assert cross_product_matrix.shape == (1, 3, 3)

    @pytest.mark.parametrize("shapes", [(1,), (4,), (2, 5)])
    def test_shapes(self, device, dtype, shapes):
        t = torch.rand(*shapes, 3, device=device, dtype=dtype)
        assert epi.cross_product_matrix(t).shape == (*shapes, 3, 3)

    def test_mean_std(self, device, dtype):
        vec = torch.tensor([[1.0, 2.0, 3.0]], device=device, dtype=dtype)
        cross_product_matrix = epi.cross_product_matrix(vec)
        assert cross_product_matrix[..., 0, 1] == -cross_product_matrix[..., 1, 0]
        assert cross_product_matrix[..., 0, 2] == -cross_product_matrix[..., 2, 0]
        assert cross_product_matrix[..., 1, 2] == -cross_product_matrix[..., 2, 1]

    def test_cross_product(self, device, dtype):
        a = torch.rand(5, 3, device=device, dtype=dtype)
        b = torch.rand(5, 3, device=device, dtype=dtype)
        expected = torch.linalg.cross(a, b, dim=-1)
        self.assert_close((epi.cross_product_matrix(a) @ b[..., None])[..., 0], expected)

    def test_gradcheck(self, device):
        vec = torch.ones(2, 3, device=device, requires_grad=True, dtype=torch.float64)
        self.gradcheck(epi.cross_product_matrix, (vec,))


class TestEnforceRank2(BaseTester):
    def test_rank(self, device, dtype):
        M = torch.rand(4, 3, 3, device=device, dtype=dtype) + torch.eye(3, device=device, dtype=dtype)
        out = epi.enforce_rank2(M)
        s = torch.linalg.svdvals(out)
        self.assert_close(s[:, 2], torch.zeros_like(s[:, 2]))
        self.assert_close(s[:, :2], torch.linalg.svdvals(M)[:, :2])

    def test_idempotent(self, device):
        M = epi.enforce_rank2(torch.rand(2, 3, 3, device=device, dtype=torch.float64))
        self.assert_close(epi.enforce_rank2(M), M)


class TestProjectToEssential(BaseTester):
    def test_singular_values(self, device):
        M = torch.rand(3, 3, 3, device=device, dtype=torch.float64)
        s = torch.linalg.svdvals(epi.project_to_essential(M))
        self.assert_close(s[:, 0], s[:, 1])
        self.assert_close(s[:, 2], torch.zeros_like(s[:, 2]))

    def test_essential_is_fixed_point(self, device):
        R = torch.linalg.matrix_exp(epi.cross_product_matrix(torch.tensor([0.1, -0.2, 0.3], dtype=torch.float64)))
        t = torch.tensor([[1.0], [0.5], [-0.2]], dtype=torch.float64)
        E = epi.essential_from_Rt(
            torch.eye(3, dtype=torch.float64)[None], torch.zeros(1, 3, 1, dtype=torch.float64), R[None], t[None]
        ).to(device)
        self.assert_close(epi.project_to_essential(E), E)
