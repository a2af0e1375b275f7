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

from typing import Optional, Tuple

import torch
from torch.linalg import inv_ex

from mvgeom.core import Tensor
from mvgeom.core.exceptions import DegenerateInputError


def _working_dtype(dtype: torch.dtype) -> torch.dtype:
    return dtype if dtype in (torch.float32, torch.float64) else torch.float32


def _torch_svd_cast(input: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """Make ``torch.linalg.svd`` work with other than fp32/64 and return ``V`` instead of ``V^H``.

    The input is cast to fp32 when needed, decomposed and cast back to the input dtype.
    """
    dtype = _working_dtype(input.dtype)
    out1, out2, out3H = torch.linalg.svd(input.to(dtype))
    return (out1.to(input.dtype), out2.to(input.dtype), out3H.mH.to(input.dtype))


def _torch_linalg_svdvals(input: Tensor) -> Tensor:
    """Make ``torch.linalg.svdvals`` work with other than fp32/64."""
    if not isinstance(input, Tensor):
        raise AssertionError(f"Input must be Tensor. Got: {type(input)}.")
    dtype = _working_dtype(input.dtype)
    return torch.linalg.svdvals(input.to(dtype)).to(input.dtype)


def safe_inverse_with_mask(A: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Invert without crashing on singular input and return the mask of valid inverses."""
    if not isinstance(A, Tensor):
        raise AssertionError(f"A must be Tensor. Got: {type(A)}.")
    dtype = _working_dtype(A.dtype)
    inverse, info = inv_ex(A.to(dtype))
    return inverse.to(A.dtype), info == 0


def degeneracy_tolerance(dtype: torch.dtype) -> float:
    """Relative singular value below which a linear system is treated as rank deficient.

    The square root of the machine epsilon separates exact degeneracies (which leave rounding noise
    around ``eps``) from merely ill-conditioned input.
    """
    return float(torch.finfo(_working_dtype(dtype)).eps) ** 0.5


def check_nullspace_dimension(system: Tensor, nullity: int, what: str, tol: Optional[float] = None) -> Tensor:
    r"""Raise when a homogeneous system ``A x = 0`` has a larger null space than expected.

    Args:
        system: design matrices with shape :math:`(B, M, K)`.
        nullity: expected dimension of the (approximate) null space.
        what: description of the problem used in the error message.
        tol: relative singular value threshold. Defaults to :func:`degeneracy_tolerance`.

    Returns:
        the singular values of the system with shape :math:`(B, min(M, K))`.

    Raises:
        DegenerateInputError: if any system in the batch has rank lower than ``K - nullity``.
    """
    K = system.shape[-1]
    rank = K - nullity
    svals = _torch_linalg_svdvals(system)
    if svals.shape[-1] < rank:
        raise DegenerateInputError(f"Not enough constraints to estimate the {what}.")
    if tol is None:
        tol = degeneracy_tolerance(system.dtype)
    scale = svals[..., :1].clamp_min(torch.finfo(_working_dtype(system.dtype)).tiny)
    ratio = svals[..., rank - 1] / scale[..., 0]
    if torch.any(ratio < tol):
        raise DegenerateInputError(
            f"The {what} is rank deficient (relative singular value {ratio.min().item():.3e} < {tol:.3e}). "
            "The input points are in a degenerate configuration.",
            actual_value=ratio.min().item(),
        )
    return svals
