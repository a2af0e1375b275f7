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
from itertools import product

import pytest
import torch

import mvgeom
from mvgeom.core.check import enable_checks

# Combinations of device and dtype to be excluded from testing.
_UNSUPPORTED = {("mps", "float64")}


def _available_devices() -> dict[str, torch.device]:
    devices = {"cpu": torch.device("cpu")}
    if torch.cuda.is_available():
        devices["cuda"] = torch.device("cuda:0")
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        devices["mps"] = torch.device("mps")
    return devices


TEST_DEVICES: dict[str, torch.device] = _available_devices()
TEST_DTYPES: dict[str, torch.dtype] = {"float32": torch.float32, "float64": torch.float64}


def _selected(config, option: str, known: dict) -> list[str]:
    value = config.getoption(option)
    return list(known) if value == "all" else value.split(",")


@pytest.fixture()
def device(device_name) -> torch.device:
    return TEST_DEVICES[device_name]


@pytest.fixture()
def dtype(dtype_name) -> torch.dtype:
    return TEST_DTYPES[dtype_name]


def pytest_addoption(parser):
    parser.addoption("--device", action="store", default="cpu", help="comma separated devices, or 'all'")
    parser.addoption("--dtype", action="store", default="float32", help="comma separated dtypes, or 'all'")
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: long running solver or bundle adjustment test")


def pytest_generate_tests(metafunc):
    """Parametrize the ``device`` and ``dtype`` fixtures from the command line options."""
    wants_device = "device_name" in metafunc.fixturenames
    wants_dtype = "dtype_name" in metafunc.fixturenames
    if wants_device and wants_dtype:
        combos = product(
            _selected(metafunc.config, "--device", TEST_DEVICES), _selected(metafunc.config, "--dtype", TEST_DTYPES)
        )
        metafunc.parametrize("device_name,dtype_name", [c for c in combos if c not in _UNSUPPORTED])
    elif wants_device:
        metafunc.parametrize("device_name", _selected(metafunc.config, "--device", TEST_DEVICES))
    elif wants_dtype:
        metafunc.parametrize("dtype_name", _selected(metafunc.config, "--dtype", TEST_DTYPES))


def pytest_collection_modifyitems(config, items):
    if config.getoption("--runslow"):
        return
    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def pytest_report_header(config):
    return (
        f"mvgeom-{mvgeom.__version__}, torch-{torch.__version__} (cuda: {torch.version.cuda}), "
        f"devices: {list(TEST_DEVICES)}"
    )


@pytest.fixture(autouse=True)
def add_doctest_deps(doctest_namespace):
    doctest_namespace["torch"] = torch
    doctest_namespace["mvgeom"] = mvgeom


@pytest.fixture(autouse=True)
def fixed_seed():
    """Make the random scenes of every test reproducible."""
    torch.manual_seed(0)


@pytest.fixture(autouse=True)
def checks_enabled():
    """Restore the shape and type guards a test may have switched off."""
    yield
    enable_checks()
