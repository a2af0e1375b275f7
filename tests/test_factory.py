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

from mvgeom import factory
from mvgeom.bundle import BundleAdjustment, MetricBundleResidual, ProjectiveBundleResidual
from mvgeom.config import BundleAdjustmentConfig, ConvergenceConfig, TriangulationConfig
from mvgeom.constants import EpipolarAlgorithm, PnPAlgorithm
from mvgeom.core.exceptions import InsufficientDisambiguationSamples, UnsupportedAlgorithmError
from mvgeom.estimation import (
    EPnP,
    IPPE,
    EssentialNister5,
    EstimateNto1,
    FundamentalLinear7,
    FundamentalLinear8,
    HomographyDLT,
    HomographyTLS,
    P3PFinsterwalder,
    P3PGrunert,
    PoseFromPairLinear6,
    Triangulate2ViewsMetricDLT,
    Triangulate2ViewsProjectiveDLT,
    TriangulateNViewsMetricDLT,
    TriangulateNViewsProjectiveDLT,
)
from mvgeom.refine import (
    AlgebraicEpipolarResidual,
    EpipolarRefiner,
    EstimateThenRefine,
    HomographyRefiner,
    HomographyTransferResidual,
    PnPRefiner,
    TriangulationRefinerEpipolar,
    TriangulationRefinerMetric,
    TriangulationRefinerProjective,
)

from testing.base import BaseTester
from testing.geometry.create import generate_multi_view_scene, generate_pnp_scene, generate_two_view_random_scene


class TestEpipolarFactory:
    def test_fundamental_n(self):
        assert isinstance(factory.fundamental_n(), FundamentalLinear8)
        estimator = factory.fundamental_n("linear_7")
        assert isinstance(estimator, FundamentalLinear7)
        assert estimator.compute_fundamental

    def test_fundamental_n_five_point(self):
        with pytest.raises(UnsupportedAlgorithmError):
            factory.fundamental_n(EpipolarAlgorithm.NISTER_5)

    def test_essential_n(self):
        assert isinstance(factory.essential_n(), EssentialNister5)
        estimator = factory.essential_n("LINEAR_8")
        assert isinstance(estimator, FundamentalLinear8)
        assert not estimator.compute_fundamental

    def test_unknown(self):
        with pytest.raises(UnsupportedAlgorithmError):
            factory.fundamental_n("LINEAR_6")
        with pytest.raises(UnsupportedAlgorithmError):
            factory.essential_n(42)

    def test_single_model(self):
        estimator = factory.essential_1(num_remove_ambiguity=3)
        assert isinstance(estimator, EstimateNto1)
        assert estimator.min_samples == 8
        assert factory.fundamental_1().min_samples == 8
        assert factory.fundamental_1("LINEAR_7", 2).min_samples == 9

    def test_single_model_without_extra(self):
        with pytest.raises(InsufficientDisambiguationSamples):
            factory.essential_1(num_remove_ambiguity=0)
        assert factory.fundamental_1("LINEAR_8", 0).min_samples == 8

    def test_refiners(self):
        assert isinstance(factory.fundamental_refine(), EpipolarRefiner)
        assert not factory.fundamental_refine().essential
        assert isinstance(factory.fundamental_refine(residual="SIMPLE").residual_model, AlgebraicEpipolarResidual)
        assert factory.essential_refine().essential
        with pytest.raises(UnsupportedAlgorithmError):
            factory.fundamental_refine(residual="GEOMETRIC")

    def test_essential_pipeline(self):
        scene = generate_two_view_random_scene(15, dtype=torch.float64)
        x1, x2 = scene["x1_norm"][0], scene["x2_norm"][0]
        E = factory.essential_1(num_remove_ambiguity=5)(x1, x2)
        refined, result = factory.essential_refine()(E, x1, x2)
        assert result.cost <= result.initial_cost
        sign = torch.sign((refined * scene["E"][0]).sum())
        assert torch.allclose(sign * refined, scene["E"][0], atol=1e-5)


class TestHomographyFactory:
    def test_dlt(self):
        assert isinstance(factory.homography_dlt(), HomographyDLT)
        assert not factory.homography_dlt(False).normalize_input

    def test_tls(self, device):
        estimator = factory.homography_tls()
        assert isinstance(estimator, HomographyTLS)
        H = torch.tensor([[1.0, 0.1, 0.5], [0.0, 0.8, -0.2], [0.01, 0.0, 1.0]], device=device, dtype=torch.float64)
        points1 = torch.rand(8, 2, device=device, dtype=torch.float64)
        points2 = (torch.cat([points1, torch.ones_like(points1[:, :1])], -1) @ H.T)
        points2 = points2[:, :2] / points2[:, 2:]
        assert torch.allclose(estimator(points1, points2)[0], H, atol=1e-8)

    def test_refine(self):
        refiner = factory.homography_refine(ConvergenceConfig(max_iterations=5), "SIMPLE")
        assert isinstance(refiner, HomographyRefiner)
        assert isinstance(refiner.residual_model, HomographyTransferResidual)
        assert refiner.optimizer.config.max_iterations == 5


class TestPnPFactory:
    @pytest.mark.parametrize(
        "which, expected",
        [
            ("P3P_GRUNERT", P3PGrunert),
            (PnPAlgorithm.P3P_FINSTERWALDER, P3PFinsterwalder),
            ("epnp", EPnP),
            (3, IPPE),
        ],
    )
    def test_pnp_n(self, which, expected):
        assert isinstance(factory.pnp_n(which), expected)

    def test_pnp_n_unknown(self):
        with pytest.raises(UnsupportedAlgorithmError):
            factory.pnp_n("P4P")

    def test_pnp_epnp(self):
        estimator = factory.pnp_epnp(num_iterations=2, magic_number=0.3)
        assert (estimator.num_iterations, estimator.magic_number) == (2, 0.3)

    def test_pnp_pipeline(self):
        scene = generate_pnp_scene(1, 6, dtype=torch.float64)
        world, img = scene["world"][0], scene["img"][0]
        estimator = factory.pnp_1(num_test=3)
        assert estimator.min_samples == 6
        pose = estimator(world, img)
        refined, _ = factory.pnp_refine()(pose, world, img)
        assert isinstance(factory.pnp_refine(), PnPRefiner)
        assert torch.allclose(refined, scene["pose"][0], atol=1e-6)


class TestTriangulationFactory(BaseTester):
    def test_defaults(self):
        assert isinstance(factory.triangulate_2view_metric(), Triangulate2ViewsMetricDLT)
        assert isinstance(factory.triangulate_2view_projective(), Triangulate2ViewsProjectiveDLT)
        assert isinstance(factory.triangulate_nview_metric(), TriangulateNViewsMetricDLT)
        assert isinstance(factory.triangulate_nview_projective(), TriangulateNViewsProjectiveDLT)

    def test_geometric(self):
        triangulate = factory.triangulate_nview_metric(TriangulationConfig("GEOMETRIC"))
        assert isinstance(triangulate, EstimateThenRefine)
        assert isinstance(triangulate.refiner, TriangulationRefinerMetric)
        projective = factory.triangulate_nview_projective(TriangulationConfig("GEOMETRIC"))
        assert isinstance(projective.refiner, TriangulationRefinerProjective)

    def test_algebraic(self, device):
        triangulate = factory.triangulate_nview_projective(TriangulationConfig("ALGEBRAIC"))
        assert isinstance(triangulate, EstimateThenRefine)
        assert isinstance(triangulate.estimator, TriangulateNViewsProjectiveDLT)
        assert isinstance(triangulate.refiner, TriangulationRefinerProjective)

        scene = generate_multi_view_scene(3, 2)
        point = triangulate(scene["points2d"][:, 1].to(device), scene["P"].to(device))
        self.assert_close(point[:3] / point[3], scene["points3d"][0, 1].to(device), rtol=1e-6, atol=1e-6)

    @pytest.mark.parametrize(
        "build, mode",
        [
            (factory.triangulate_2view_metric, "ALGEBRAIC"),
            (factory.triangulate_nview_metric, "ALGEBRAIC"),
            (factory.triangulate_2view_projective, "GEOMETRIC"),
            (factory.triangulate_2view_projective, "ALGEBRAIC"),
        ],
    )
    def test_unsupported_mode(self, build, mode):
        with pytest.raises(UnsupportedAlgorithmError):
            build(TriangulationConfig(mode))

    def test_geometric_two_view(self, device):
        scene = generate_two_view_random_scene(3, device=device, dtype=torch.float64)
        pose_1to2 = torch.cat([scene["R2"], scene["t2"]], dim=-1)[0]
        obs1 = scene["x1_norm"][0, 0] + 1e-3
        obs2 = scene["x2_norm"][0, 0] - 1e-3
        dlt = factory.triangulate_2view_metric()(obs1, obs2, pose_1to2)
        geometric = factory.triangulate_2view_metric(TriangulationConfig("GEOMETRIC"))(obs1, obs2, pose_1to2)
        residual = TriangulationRefinerMetric().residual_model
        observations = torch.stack([obs1, obs2])
        poses = torch.stack([torch.eye(3, 4, device=device, dtype=torch.float64), pose_1to2])
        assert residual(geometric, observations, poses).pow(2).sum() <= residual(dlt, observations, poses).pow(2).sum()

    def test_pose_from_pair(self, device):
        estimator = factory.triangulate_pose_from_pair()
        assert isinstance(estimator, PoseFromPairLinear6)
        scene = generate_two_view_random_scene(7, device=device, dtype=torch.float64)
        pose = estimator(scene["x2_norm"][0], scene["X"][0])[0]
        expected = torch.cat([scene["R2"], scene["t2"]], dim=-1)[0]
        self.assert_close(pose, expected, rtol=1e-6, atol=1e-6)

    def test_refine_epipolar(self):
        refiner = factory.triangulate_refine_epipolar(ConvergenceConfig(max_iterations=9))
        assert isinstance(refiner, TriangulationRefinerEpipolar)
        assert refiner.optimizer.config.max_iterations == 9
        assert isinstance(factory.triangulate_refine_epipolar(), TriangulationRefinerEpipolar)

    def test_refiners(self):
        config = ConvergenceConfig(max_iterations=7)
        assert factory.triangulate_refine_metric(config).optimizer.config.max_iterations == 7
        assert isinstance(factory.triangulate_refine_projective(), TriangulationRefinerProjective)

    def test_nview_projective_geometric(self, device):
        scene = generate_multi_view_scene(3, 2)
        point = factory.triangulate_nview_projective(TriangulationConfig("GEOMETRIC"))(
            scene["points2d"][:, 1].to(device), scene["P"].to(device)
        )
        self.assert_close(point[:3] / point[3], scene["points3d"][0, 1].to(device), rtol=1e-6, atol=1e-6)


class TestBundleAdjustmentFactory:
    def test_metric(self):
        ba = factory.bundle_adjustment_metric()
        assert isinstance(ba, BundleAdjustment)
        assert isinstance(ba.residual_function, MetricBundleResidual)

    def test_projective(self):
        config = BundleAdjustmentConfig(initial_damping=1e-2)
        ba = factory.bundle_adjustment_projective(config)
        assert isinstance(ba.residual_function, ProjectiveBundleResidual)
        assert ba.optimizer.initial_damping == 1e-2
