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

from typing import Callable, Optional

import torch
from packaging import version

from mvgeom.core import Tensor


def torch_version() -> str:
    """Parse the `torch.__version__` variable and removes +cu*/cpu."""
    return torch.__version__.split("+")[0]


def torch_version_ge(major: int, minor: int, patch: Optional[int] = None) -> bool:
    _version = version.parse(torch_version())
    if patch is None:
        return _version >= version.parse(f"{major}.{minor}")
    return _version >= version.parse(f"{major}.{minor}.{patch}")


def jacobian(func: Callable[[Tensor], Tensor], x: Tensor) -> Tensor:
    """Dense Jacobian of a vector function ``R^n -> R^m`` evaluated at ``x`` with shape :math:`(m, n)`.

    Uses reverse-mode ``torch.func`` when available, falling back to the vectorized
    ``torch.autograd.functional`` path on older releases.
    """
    if torch_version_ge(2, 0):
        return torch.func.jacrev(func)(x)
    # TODO: remove this branch when mvgeom relies on torch >= 2.0
    return torch.autograd.functional.jacobian(func, x, vectorize=True)
