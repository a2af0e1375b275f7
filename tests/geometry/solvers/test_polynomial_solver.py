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

from mvgeom.core.exceptions import BaseError
from mvgeom.geometry.solvers import find_real_roots, poly_mul, poly_val, solve_quadratic

from testing.base import BaseTester


class TestSolveQuadratic(BaseTester):
    def test_two_roots(self, device, dtype):
        coeffs = torch.tensor([[1.0, -3.0, 2.0], [2.0, 0.0, -8.0]], device=device, dtype=dtype)
        roots, mask = solve_quadratic(coeffs)
        assert mask.all()
        expected = torch.tensor([[1.0, 2.0], [-2.0, 2.0]], device=device, dtype=dtype)
        self.assert_close(roots.sort(dim=-1).values, expected)

    def test_complex_roots(self, device, dtype):
        roots, mask = solve_quadratic(torch.tensor([[1.0, 0.0, 1.0]], device=device, dtype=dtype))
        assert not mask.any()
        self.assert_close(roots, torch.zeros_like(roots))

    def test_linear(self, device, dtype):
        roots, mask = solve_quadratic(torch.tensor([[0.0, 2.0, -4.0]], device=device, dtype=dtype))
        assert mask.tolist() == [[True, False]]
        self.assert_close(roots[0, 0], torch.tensor(2.0, device=device, dtype=dtype))

    def test_cancellation(self, device):
        # b^2 >> 4ac: the naive formula loses the small root
        coeffs = torch.tensor([[1.0, -1e8, 1.0]], device=device, dtype=torch.float64)
        roots, _ = solve_quadratic(coeffs)
        self.assert_close(roots.min(), torch.tensor(1e-8, device=device, dtype=torch.float64), rtol=1e-10, atol=0.0)


class TestFindRealRoots(BaseTester):
    def test_cubic(self, device, dtype):
        coeffs = torch.tensor([[1.0, -6.0, 11.0, -6.0]], device=device, dtype=dtype)
        roots, mask = find_real_roots(coeffs)
        assert mask.sum() == 3
        expected = torch.tensor([1.0, 2.0, 3.0], device=device, dtype=dtype)
        self.assert_close(roots[mask].sort().values, expected, rtol=1e-4, atol=1e-4)

    def test_one_real_root(self, device, dtype):
        # (x - 2)(x^2 + 1)
        coeffs = torch.tensor([[1.0, -2.0, 1.0, -2.0]], device=device, dtype=dtype)
        roots, mask = find_real_roots(coeffs)
        assert mask.sum() == 1
        self.assert_close(roots[mask], torch.tensor([2.0], device=device, dtype=dtype), rtol=1e-4, atol=1e-4)

    def test_quartic_batch(self, device):
        expected = torch.tensor([[-2.0, -0.5, 1.0, 3.0], [-1.0, 0.25, 2.0, 4.0]], device=device, dtype=torch.float64)
        coeffs = torch.ones(2, 1, device=device, dtype=torch.float64)
        for k in range(4):
            factor = torch.stack([torch.ones_like(expected[:, k]), -expected[:, k]], dim=-1)
            coeffs = poly_mul(coeffs, factor)
        roots, mask = find_real_roots(coeffs)
        assert mask.all()
        self.assert_close(roots.sort(dim=-1).values, expected, rtol=1e-8, atol=1e-8)
        self.assert_close(poly_val(coeffs, roots), torch.zeros_like(roots), rtol=0.0, atol=1e-8)

    def test_degree_zero(self, device, dtype):
        with pytest.raises(BaseError):
            find_real_roots(torch.ones(1, 1, device=device, dtype=dtype))
