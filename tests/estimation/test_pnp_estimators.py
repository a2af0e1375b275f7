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

from mvgeom.config import EPnPConfig
from mvgeom.core.exceptions import DegenerateInputError, ShapeError
from mvgeom.estimation import IPPE, EPnP, P3PFinsterwalder, P3PGrunert, PoseFromPairLinear6

from testing.base import BaseTester
from testing.geometry.create import generate_pnp_scene, generate_two_view_random_scene


class TestP3PEstimators(BaseTester):
    @pytest.mark.parametrize("estimator_cls", [P3PGrunert, P3PFinsterwalder])
    def test_contains_true_pose(self, estimator_cls, device):
        scene = generate_pnp_scene(1, 3, device=device, dtype=torch.float64)
        poses = estimator_cls()(scene["world"][0], scene["img"][0])
        assert 1 <= len(poses) <= 4
        errors = torch.stack([(pose - scene["pose"][0]).abs().max() for pose in poses])
        assert errors.min() < 1e-6

    @pytest.mark.parametrize("estimator_cls", [P3PGrunert, P3PFinsterwalder])
    def test_rotations(self, estimator_cls, device):
        scene = generate_pnp_scene(1, 3, device=device, dtype=torch.float64)
        for pose in estimator_cls()(scene["world"][0], scene["img"][0]):
            R = pose[:, :3]
            self.assert_close(R @ R.T, torch.eye(3, device=device, dtype=torch.float64))

    def test_exactly_three(self, device):
        scene = generate_pnp_scene(1, 4, device=device, dtype=torch.float64)
        with pytest.raises(DegenerateInputError):
            P3PGrunert()(scene["world"][0], scene["img"][0])

    def test_attributes(self):
        assert P3PGrunert().min_samples == 3
        assert P3PFinsterwalder().max_hypotheses == 4


class TestEPnPEstimator(BaseTester):
    @pytest.mark.parametrize("planar", [False, True])
    def test_exact(self, planar, device):
        scene = generate_pnp_scene(1, 10, planar=planar, device=device, dtype=torch.float64)
        poses = EPnP()(scene["world"][0], scene["img"][0])
        assert len(poses) == 1
        self.assert_close(poses[0], scene["pose"][0], rtol=1e-5, atol=1e-5)

    def test_config(self):
        estimator = EPnP(config=EPnPConfig(num_iterations=3, magic_number=0.2))
        assert estimator.num_iterations == 3
        assert estimator.magic_number == 0.2
        assert "magic_number=0.2" in repr(estimator)

    def test_wrong_shape(self, device, dtype):
        with pytest.raises(ShapeError):
            EPnP()(torch.rand(6, 2, device=device, dtype=dtype), torch.rand(6, 2, device=device, dtype=dtype))


class TestIPPEEstimator(BaseTester):
    def test_exact(self, device):
        scene = generate_pnp_scene(1, 8, planar=True, device=device, dtype=torch.float64)
        poses = IPPE()(scene["world"][0], scene["img"][0])
        assert len(poses) == 1
        self.assert_close(poses[0], scene["pose"][0], rtol=1e-6, atol=1e-6)

    def test_not_planar(self, device):
        scene = generate_pnp_scene(1, 8, planar=False, device=device, dtype=torch.float64)
        with pytest.raises(DegenerateInputError):
            IPPE()(scene["world"][0], scene["img"][0])


class TestPoseFromPairLinear6Estimator(BaseTester):
    def test_exact(self, device):
        scene = generate_two_view_random_scene(8, device=device, dtype=torch.float64)
        poses = PoseFromPairLinear6()(scene["x2_norm"][0], scene["X"][0])
        assert len(poses) == 1
        expected = torch.cat([scene["R2"], scene["t2"]], dim=-1)[0]
        self.assert_close(poses[0], expected, rtol=1e-6, atol=1e-6)

    def test_attributes(self):
        estimator = PoseFromPairLinear6()
        assert (estimator.min_samples, estimator.max_hypotheses) == (6, 1)

    def test_wrong_shape(self, device, dtype):
        with pytest.raises(ShapeError):
            PoseFromPairLinear6()(
                torch.rand(6, 3, device=device, dtype=dtype), torch.rand(6, 3, device=device, dtype=dtype)
            )
