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

from mvgeom.core.exceptions import DegenerateInputError
from mvgeom.utils import check_nullspace_dimension, degeneracy_tolerance, eye_like, safe_inverse_with_mask, vec_like
from mvgeom.utils._compat import jacobian, torch_version_ge

from testing.base import BaseTester


class TestNullspaceDimension(BaseTester):
    def test_rank_ok(self, device, dtype):
        A = torch.randn(2, 8, 9, device=device, dtype=dtype)
        svals = check_nullspace_dimension(A, 1, "fundamental matrix")
        assert svals.shape == (2, 8)

    def test_rank_deficient(self, device, dtype):
        A = torch.randn(1, 8, 9, device=device, dtype=dtype)
        A[:, 7] = A[:, 6]
        with pytest.raises(DegenerateInputError) as err:
            check_nullspace_dimension(A, 1, "fundamental matrix")
        assert err.value.actual_value < degeneracy_tolerance(dtype)

    def test_too_few_rows(self, device, dtype):
        with pytest.raises(DegenerateInputError):
            check_nullspace_dimension(torch.randn(1, 6, 9, device=device, dtype=dtype), 1, "homography")

    def test_tolerance(self):
        assert degeneracy_tolerance(torch.float64) == pytest.approx(torch.finfo(torch.float64).eps ** 0.5)
        assert degeneracy_tolerance(torch.float16) == degeneracy_tolerance(torch.float32)


class TestSafeInverse(BaseTester):
    def test_mask(self, device, dtype):
        A = torch.stack([2.0 * torch.eye(3, device=device, dtype=dtype), torch.zeros(3, 3, device=device, dtype=dtype)])
        inverse, mask = safe_inverse_with_mask(A)
        assert mask.tolist() == [True, False]
        self.assert_close(inverse[0], 0.5 * torch.eye(3, device=device, dtype=dtype))


class TestLike(BaseTester):
    def test_eye_like(self, device, dtype):
        out = eye_like(3, torch.rand(2, 5, device=device, dtype=dtype))
        assert out.shape == (2, 3, 3)
        self.assert_close(out[1], torch.eye(3, device=device, dtype=dtype))

    def test_vec_like(self, device, dtype):
        out = vec_like(4, torch.rand(3, 1, device=device, dtype=dtype), shared_memory=True)
        assert out.shape == (3, 4, 1)
        assert (out == 0).all()

    def test_invalid(self, device):
        with pytest.raises(ValueError):
            eye_like(0, torch.rand(2, device=device))
        with pytest.raises(ValueError):
            vec_like(3, torch.tensor(1.0, device=device))

    def test_copies_are_independent(self, device):
        out = eye_like(2, torch.rand(2, 1, device=device))
        out[0, 0, 0] = 5.0
        assert out[1, 0, 0] == 1.0


class TestJacobian(BaseTester):
    def test_linear(self, device):
        A = torch.randn(4, 3, device=device, dtype=torch.float64)
        J = jacobian(lambda x: A @ x, torch.zeros(3, device=device, dtype=torch.float64))
        self.assert_close(J, A)

    def test_version(self):
        assert torch_version_ge(1, 0)
        assert not torch_version_ge(99, 0)
