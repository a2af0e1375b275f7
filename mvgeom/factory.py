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

"""Construction of the estimators, refiners and bundle adjusters from algorithm identifiers and configs.

Every function accepts ``None`` for its config and falls back to the defaults.
"""

from typing import Callable, Optional, Tuple, TypeVar, Union

from mvgeom.bundle import BundleAdjustment, MetricBundleResidual, ProjectiveBundleResidual
from mvgeom.config import BundleAdjustmentConfig, ConvergenceConfig, EPnPConfig, TriangulationConfig
from mvgeom.constants import EpipolarAlgorithm, PnPAlgorithm, ResidualType, TKEnum, TriangulationMode
from mvgeom.core import Module
from mvgeom.core.exceptions import UnsupportedAlgorithmError
from mvgeom.estimation import (
    EPnP,
    IPPE,
    EssentialNister5,
    EstimateNto1,
    Estimator,
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
    EpipolarRefiner,
    EstimateThenRefine,
    HomographyRefiner,
    PnPRefiner,
    PoseReprojectionResidual,
    SampsonEpipolarResidual,
    TriangulationRefinerEpipolar,
    TriangulationRefinerMetric,
    TriangulationRefinerProjective,
)

__all__ = [
    "bundle_adjustment_metric",
    "bundle_adjustment_projective",
    "essential_1",
    "essential_n",
    "essential_refine",
    "fundamental_1",
    "fundamental_n",
    "fundamental_refine",
    "homography_dlt",
    "homography_refine",
    "homography_tls",
    "pnp_1",
    "pnp_epnp",
    "pnp_n",
    "pnp_refine",
    "triangulate_2view_metric",
    "triangulate_2view_projective",
    "triangulate_nview_metric",
    "triangulate_nview_projective",
    "triangulate_pose_from_pair",
    "triangulate_refine_epipolar",
    "triangulate_refine_metric",
    "triangulate_refine_projective",
]

E = TypeVar("E")


def _resolve(getter: Callable[[TKEnum], E], value: TKEnum, kind: str) -> E:
    try:
        return getter(value)
    except (KeyError, ValueError) as err:
        raise UnsupportedAlgorithmError(f"Unknown {kind}: {value!r}.") from err


def homography_dlt(normalize_input: bool = True) -> HomographyDLT:
    """Homography from four or more correspondences.

    Args:
        normalize_input: whether to condition the points. Disable it for normalized image coordinates.
    """
    return HomographyDLT(normalize_input)


def homography_tls() -> HomographyTLS:
    """Homography from four or more correspondences by total least squares."""
    return HomographyTLS()


def homography_refine(
    config: Optional[ConvergenceConfig] = None, residual: Union[ResidualType, str] = ResidualType.SAMPSON
) -> HomographyRefiner:
    """Non-linear homography refinement minimising the Sampson or the transfer error."""
    return HomographyRefiner(config, _resolve(ResidualType.get, residual, "residual type"))


def _epipolar_n(which: TKEnum, compute_fundamental: bool) -> Estimator:
    algorithm = _resolve(EpipolarAlgorithm.get, which, "epipolar algorithm")
    if algorithm == EpipolarAlgorithm.LINEAR_8:
        return FundamentalLinear8(compute_fundamental)
    if algorithm == EpipolarAlgorithm.LINEAR_7:
        return FundamentalLinear7(compute_fundamental)
    if compute_fundamental:
        raise UnsupportedAlgorithmError(f"{algorithm} only estimates essential matrices.")
    return EssentialNister5()


def fundamental_n(which: Union[EpipolarAlgorithm, str] = EpipolarAlgorithm.LINEAR_8) -> Estimator:
    """Fundamental matrix estimator returning every hypothesis.

    Raises:
        UnsupportedAlgorithmError: for ``NISTER_5`` or an unknown algorithm.
    """
    return _epipolar_n(which, compute_fundamental=True)


def essential_n(which: Union[EpipolarAlgorithm, str] = EpipolarAlgorithm.NISTER_5) -> Estimator:
    """Essential matrix estimator returning every hypothesis. The points are normalized image coordinates."""
    return _epipolar_n(which, compute_fundamental=False)


def fundamental_1(
    which: Union[EpipolarAlgorithm, str] = EpipolarAlgorithm.LINEAR_8, num_remove_ambiguity: int = 1
) -> EstimateNto1:
    """Fundamental matrix estimator returning one model, picked by the Sampson error of extra points."""
    return EstimateNto1(fundamental_n(which), SampsonEpipolarResidual(), num_remove_ambiguity)


def essential_1(
    which: Union[EpipolarAlgorithm, str] = EpipolarAlgorithm.NISTER_5, num_remove_ambiguity: int = 1
) -> EstimateNto1:
    """Essential matrix estimator returning one model, picked by the Sampson error of extra points."""
    return EstimateNto1(essential_n(which), SampsonEpipolarResidual(), num_remove_ambiguity)


def fundamental_refine(
    config: Optional[ConvergenceConfig] = None, residual: Union[ResidualType, str] = ResidualType.SAMPSON
) -> EpipolarRefiner:
    """Fundamental matrix refinement minimising the Sampson (``SAMPSON``) or the algebraic (``SIMPLE``) error."""
    return EpipolarRefiner(config, _resolve(ResidualType.get, residual, "residual type"), essential=False)


def essential_refine(config: Optional[ConvergenceConfig] = None) -> EpipolarRefiner:
    """Essential matrix refinement on its five dimensional manifold minimising the Sampson error."""
    return EpipolarRefiner(config, ResidualType.SAMPSON, essential=True)


def pnp_n(which: Union[PnPAlgorithm, str] = PnPAlgorithm.P3P_GRUNERT, num_iterations: int = 10) -> Estimator:
    """PnP estimator returning every hypothesis.

    Args:
        which: the algorithm.
        num_iterations: the Gauss-Newton steps of EPnP. Ignored by the other algorithms.
    """
    algorithm = _resolve(PnPAlgorithm.get, which, "PnP algorithm")
    if algorithm == PnPAlgorithm.P3P_GRUNERT:
        return P3PGrunert()
    if algorithm == PnPAlgorithm.P3P_FINSTERWALDER:
        return P3PFinsterwalder()
    if algorithm == PnPAlgorithm.EPNP:
        return EPnP(num_iterations)
    return IPPE()


def pnp_1(
    which: Union[PnPAlgorithm, str] = PnPAlgorithm.P3P_GRUNERT, num_iterations: int = 10, num_test: int = 1
) -> EstimateNto1:
    """PnP estimator returning one pose, picked by the reprojection error of ``num_test`` extra points."""
    return EstimateNto1(pnp_n(which, num_iterations), PoseReprojectionResidual(), num_test)


def pnp_epnp(num_iterations: int = 10, magic_number: float = 0.1) -> EPnP:
    """EPnP with an explicit planarity threshold."""
    return EPnP(config=EPnPConfig(num_iterations, magic_number))


def pnp_refine(config: Optional[ConvergenceConfig] = None) -> PnPRefiner:
    """Pose refinement minimising the reprojection error."""
    return PnPRefiner(config)


def _triangulation(
    config: Optional[TriangulationConfig],
    dlt: Module,
    refiner: Callable[[ConvergenceConfig], Module],
    allowed: Tuple[TriangulationMode, ...],
) -> Module:
    config = config if config is not None else TriangulationConfig()
    mode = TriangulationMode.get(config.mode)
    if mode not in allowed:
        raise UnsupportedAlgorithmError(f"{mode} is not supported by {dlt.__class__.__name__}.")
    if mode in (TriangulationMode.GEOMETRIC, TriangulationMode.ALGEBRAIC):
        return EstimateThenRefine(dlt, refiner(config.convergence))
    return dlt


def triangulate_2view_metric(config: Optional[TriangulationConfig] = None) -> Module:
    """Two view calibrated triangulation with ``DLT`` or ``GEOMETRIC`` mode."""
    allowed = (TriangulationMode.DLT, TriangulationMode.GEOMETRIC)
    return _triangulation(config, Triangulate2ViewsMetricDLT(), TriangulationRefinerMetric, allowed)


def triangulate_2view_projective(config: Optional[TriangulationConfig] = None) -> Module:
    """Two view uncalibrated triangulation. Only the ``DLT`` mode is supported."""
    allowed = (TriangulationMode.DLT,)
    return _triangulation(config, Triangulate2ViewsProjectiveDLT(), TriangulationRefinerProjective, allowed)


def triangulate_nview_metric(config: Optional[TriangulationConfig] = None) -> Module:
    """N view calibrated triangulation with ``DLT`` or ``GEOMETRIC`` mode."""
    allowed = (TriangulationMode.DLT, TriangulationMode.GEOMETRIC)
    return _triangulation(config, TriangulateNViewsMetricDLT(), TriangulationRefinerMetric, allowed)


def triangulate_nview_projective(config: Optional[TriangulationConfig] = None) -> Module:
    """N view uncalibrated triangulation.

    ``GEOMETRIC`` and ``ALGEBRAIC`` both build the DLT followed by the reprojection error refinement of the
    homogeneous point.
    """
    allowed = (TriangulationMode.DLT, TriangulationMode.GEOMETRIC, TriangulationMode.ALGEBRAIC)
    return _triangulation(config, TriangulateNViewsProjectiveDLT(), TriangulationRefinerProjective, allowed)


def triangulate_pose_from_pair() -> PoseFromPairLinear6:
    """Linear motion from view 1 to view 2 given six or more points known in the frame of view 1."""
    return PoseFromPairLinear6()


def triangulate_refine_epipolar(config: Optional[ConvergenceConfig] = None) -> TriangulationRefinerEpipolar:
    """Refinement of a 3d point by its Sampson error under the essential matrix of each view."""
    return TriangulationRefinerEpipolar(config)


def triangulate_refine_metric(config: Optional[ConvergenceConfig] = None) -> TriangulationRefinerMetric:
    """Refinement of a 3d point by its reprojection error in calibrated views."""
    return TriangulationRefinerMetric(config)


def triangulate_refine_projective(config: Optional[ConvergenceConfig] = None) -> TriangulationRefinerProjective:
    """Refinement of a homogeneous point by its reprojection error in uncalibrated views."""
    return TriangulationRefinerProjective(config)


def bundle_adjustment_metric(config: Optional[BundleAdjustmentConfig] = None) -> BundleAdjustment:
    """Bundle adjustment of a :class:`~mvgeom.bundle.SceneStructureMetric`."""
    return BundleAdjustment(MetricBundleResidual(), config)


def bundle_adjustment_projective(config: Optional[BundleAdjustmentConfig] = None) -> BundleAdjustment:
    """Bundle adjustment of a :class:`~mvgeom.bundle.SceneStructureProjective`."""
    return BundleAdjustment(ProjectiveBundleResidual(), config)
