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
from mvgeom.geometry.homography import (
    find_homography_dlt,
    find_homography_tls,
    oneway_transfer_error,
    symmetric_transfer_error,
)
from mvgeom.geometry.linalg import transform_points

from testing.base import BaseTester
from testing.geometry.create import create_random_homography


def _random_homography(batch_size, device, dtype):
    H = torch.tensor([[1.2, 0.1, 20.0], [-0.15, 0.9, -10.0], [2e-4, -1e-4, 1.0]], device=device, dtype=dtype)
    H = H.expand(batch_size, 3, 3)
    return H @ create_random_homography(H, 3, 1e-2)


class TestFindHomographyDLT(BaseTester):
    @pytest.mark.parametrize("batch_size, num_points", [(1, 4), (2, 8), (3, 15)])
    def test_shape(self, batch_size, num_points, device, dtype):
        points1 = torch.rand(batch_size, num_points, 2, device=device, dtype=dtype)
        points2 = torch.rand(batch_size, num_points, 2, device=device, dtype=dtype)
        assert find_homography_dlt(points1, points2).shape == (batch_size, 3, 3)

    @pytest.mark.parametrize("normalize", [True, False])
    def test_exact(self, normalize, device):
        dtype = torch.float64
        H = _random_homography(2, device, dtype)
        scale = 200.0 if normalize else 2.0
        points1 = torch.rand(2, 10, 2, device=device, dtype=dtype) * scale
        points2 = transform_points(H, points1)
        H_est = find_homography_dlt(points1, points2, normalize=normalize)
        self.assert_close(H_est, H / H[:, 2:, 2:], rtol=1e-6, atol=1e-6)
        self.assert_close(H_est[:, 2, 2], torch.ones(2, device=device, dtype=dtype))

    def test_minimal(self, device, dtype):
        points1 = torch.tensor([[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]], device=device, dtype=dtype)
        points2 = torch.tensor([[[0.0, 0.0], [2.0, 0.0], [2.0, 2.0], [0.0, 2.0]]], device=device, dtype=dtype)
        expected = torch.diag(torch.tensor([2.0, 2.0, 1.0], device=device, dtype=dtype))[None]
        self.assert_close(find_homography_dlt(points1, points2), expected, low_tolerance=True)

    def test_weights(self, device):
        dtype = torch.float64
        H = _random_homography(1, device, dtype)
        points1 = torch.rand(1, 12, 2, device=device, dtype=dtype) * 100.0
        points2 = transform_points(H, points1)
        points2[:, -2:] += 50.0
        weights = torch.ones(1, 12, device=device, dtype=dtype)
        weights[:, -2:] = 0.0
        H_est = find_homography_dlt(points1, points2, weights)
        self.assert_close(H_est, H / H[:, 2:, 2:], rtol=1e-6, atol=1e-6)

    def test_too_few_points(self, device, dtype):
        points = torch.rand(1, 3, 2, device=device, dtype=dtype)
        with pytest.raises(DegenerateInputError) as errinfo:
            find_homography_dlt(points, points)
        assert errinfo.value.actual_value == 3

    def test_collinear(self, device, dtype):
        t = torch.linspace(0.0, 1.0, 6, device=device, dtype=dtype)
        points = torch.stack([t, 2.0 * t], dim=-1)[None]
        with pytest.raises(DegenerateInputError):
            find_homography_dlt(points, points + 1.0)


class TestFindHomographyTLS(BaseTester):
    @pytest.mark.parametrize("batch_size, num_points", [(1, 4), (2, 8), (3, 15)])
    def test_shape(self, batch_size, num_points, device, dtype):
        points1 = torch.rand(batch_size, num_points, 2, device=device, dtype=dtype)
        points2 = torch.rand(batch_size, num_points, 2, device=device, dtype=dtype)
        assert find_homography_tls(points1, points2).shape == (batch_size, 3, 3)

    def test_exact(self, device):
        dtype = torch.float64
        H = _random_homography(2, device, dtype)
        points1 = torch.rand(2, 10, 2, device=device, dtype=dtype) * 200.0
        points2 = transform_points(H, points1)
        H_est = find_homography_tls(points1, points2)
        self.assert_close(H_est, H / H[:, 2:, 2:], rtol=1e-6, atol=1e-6)

    def test_minimal(self, device, dtype):
        points1 = torch.tensor([[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]], device=device, dtype=dtype)
        H = torch.tensor([[[1.0, 0.2, 3.0], [0.0, 2.0, -1.0], [0.1, 0.0, 1.0]]], device=device, dtype=dtype)
        H_est = find_homography_tls(points1, transform_points(H, points1))
        self.assert_close(H_est, H, low_tolerance=True)

    def test_noisy_close_to_dlt(self, device):
        dtype = torch.float64
        H = _random_homography(1, device, dtype)
        points1 = torch.rand(1, 50, 2, device=device, dtype=dtype) * 100.0
        points2 = transform_points(H, points1) + 1e-2 * torch.randn(1, 50, 2, device=device, dtype=dtype)
        error_tls = oneway_transfer_error(points1, points2, find_homography_tls(points1, points2)).mean()
        error_dlt = oneway_transfer_error(points1, points2, find_homography_dlt(points1, points2)).mean()
        assert error_tls < 1e-3
        assert error_tls < 2.0 * error_dlt

    def test_weights(self, device):
        dtype = torch.float64
        H = _random_homography(1, device, dtype)
        points1 = torch.rand(1, 12, 2, device=device, dtype=dtype) * 100.0
        points2 = transform_points(H, points1)
        points2[:, -2:] += 50.0
        weights = torch.ones(1, 12, device=device, dtype=dtype)
        weights[:, -2:] = 0.0
        H_est = find_homography_tls(points1, points2, weights)
        self.assert_close(H_est, H / H[:, 2:, 2:], rtol=1e-6, atol=1e-6)

    def test_too_few_points(self, device, dtype):
        points = torch.rand(1, 3, 2, device=device, dtype=dtype)
        with pytest.raises(DegenerateInputError):
            find_homography_tls(points, points)

    def test_collinear(self, device, dtype):
        t = torch.linspace(0.0, 1.0, 6, device=device, dtype=dtype)
        points = torch.stack([t, 2.0 * t], dim=-1)[None]
        with pytest.raises(DegenerateInputError):
            find_homography_tls(points, points + 1.0)

    def test_three_collinear_of_four(self, device):
        dtype = torch.float64
        points1 = torch.tensor([[[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 1.0]]], device=device, dtype=dtype)
        with pytest.raises(DegenerateInputError):
            find_homography_tls(points1, points1 * 2.0)


class TestTransferError(BaseTester):
    def test_oneway_zero(self, device, dtype):
        H = _random_homography(1, device, dtype)
        points1 = torch.rand(1, 6, 2, device=device, dtype=dtype)
        err = oneway_transfer_error(points1, transform_points(H, points1), H)
        self.assert_close(err, torch.zeros_like(err), low_tolerance=True)

    def test_translation(self, device, dtype):
        H = torch.eye(3, device=device, dtype=dtype)[None]
        points1 = torch.rand(1, 4, 2, device=device, dtype=dtype)
        points2 = points1 + torch.tensor([3.0, 4.0], device=device, dtype=dtype)
        expected = torch.full((1, 4), 25.0, device=device, dtype=dtype)
        self.assert_close(oneway_transfer_error(points1, points2, H), expected)
        self.assert_close(oneway_transfer_error(points1, points2, H, squared=False), expected.sqrt())
        self.assert_close(symmetric_transfer_error(points1, points2, H), 2.0 * expected)

    def test_singular_homography(self, device, dtype):
        H = torch.zeros(1, 3, 3, device=device, dtype=dtype)
        H[:, 2, 2] = 1.0
        points = torch.rand(1, 3, 2, device=device, dtype=dtype)
        err = symmetric_transfer_error(points, points, H)
        assert (err == torch.finfo(dtype).max).all()
