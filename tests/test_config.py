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

from mvgeom.config import BundleAdjustmentConfig, ConvergenceConfig, EPnPConfig, TriangulationConfig
from mvgeom.constants import EpipolarAlgorithm, PnPAlgorithm, ResidualType, TriangulationMode
from mvgeom.core.exceptions import UnsupportedAlgorithmError, ValueCheckError


class TestConfigs:
    def test_convergence_defaults(self):
        config = ConvergenceConfig()
        assert (config.ftol, config.gtol, config.max_iterations) == (1e-8, 1e-8, 100)

    def test_convergence_invalid(self):
        with pytest.raises(ValueCheckError):
            ConvergenceConfig(gtol=-1e-3)

    def test_triangulation_mode_from_string(self):
        config = TriangulationConfig("geometric")
        assert config.mode == TriangulationMode.GEOMETRIC
        assert config.convergence == ConvergenceConfig()

    def test_triangulation_unknown_mode(self):
        with pytest.raises(UnsupportedAlgorithmError):
            TriangulationConfig("MIDPOINT")
        with pytest.raises(UnsupportedAlgorithmError):
            TriangulationConfig(7)

    def test_epnp(self):
        assert EPnPConfig() == EPnPConfig(10, 0.1)
        with pytest.raises(ValueCheckError):
            EPnPConfig(num_iterations=-1)
        with pytest.raises(ValueCheckError):
            EPnPConfig(magic_number=1.0)

    def test_bundle_adjustment(self):
        config = BundleAdjustmentConfig(convergence=ConvergenceConfig(max_iterations=3))
        assert config.convergence.max_iterations == 3
        assert config.damping_factor == 10.0
        assert config.max_damping_retries == 10

    def test_configs_are_independent(self):
        a, b = TriangulationConfig(), TriangulationConfig()
        a.convergence.max_iterations = 1
        assert b.convergence.max_iterations == 100


class TestEnums:
    @pytest.mark.parametrize(
        "enum, name",
        [
            (EpipolarAlgorithm, "LINEAR_7"),
            (PnPAlgorithm, "EPNP"),
            (TriangulationMode, "ALGEBRAIC"),
            (ResidualType, "SIMPLE"),
        ],
    )
    def test_get(self, enum, name):
        member = enum[name]
        assert enum.get(name) is member
        assert enum.get(name.lower()) is member
        assert enum.get(member.value) is member
        assert enum.get(member) is member
        assert name in enum
        assert name.lower() in enum

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            PnPAlgorithm.get("P4P")
        assert "P4P" not in PnPAlgorithm

    def test_unknown_value(self):
        with pytest.raises(ValueError):
            EpipolarAlgorithm.get(5)

    def test_wrong_type(self):
        with pytest.raises(TypeError):
            ResidualType.get(1.5)

    def test_repr(self):
        assert repr(ResidualType) == "ResidualType.SAMPSON | ResidualType.SIMPLE"
