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

"""Module containing numerical functionalities for SfM."""

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SHAPE


def cross_product_matrix(x: Tensor) -> Tensor:
    r"""Return the skew-symmetric cross product matrix of a vector.

    Args:
        x: The input vector to construct the matrix in the shape :math:`(*, 3)`.

    Returns:
        The constructed cross product matrix with shape :math:`(*, 3, 3)`.

    Example:
        >>> cross_product_matrix(torch.tensor([1., 2., 3.]))
        tensor([[ 0., -3.,  2.],
                [ 3.,  0., -1.],
                [-2.,  1.,  0.]])
    """
    MVG_CHECK_SHAPE(x, ["*", "3"])
    x0, x1, x2 = x[..., 0], x[..., 1], x[..., 2]
    zeros = torch.zeros_like(x0)
    cross_product_matrix_flat = torch.stack([zeros, -x2, x1, x2, zeros, -x0, -x1, x0, zeros], dim=-1)
    return cross_product_matrix_flat.view(*x.shape[:-1], 3, 3)


def enforce_rank2(M: Tensor) -> Tensor:
    r"""Project :math:`(*, 3, 3)` matrices onto the closest rank-2 matrix in Frobenius norm."""
    MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    U, S, Vh = torch.linalg.svd(M)
    S = torch.stack([S[..., 0], S[..., 1], torch.zeros_like(S[..., 2])], dim=-1)
    return U @ torch.diag_embed(S) @ Vh


def project_to_essential(M: Tensor) -> Tensor:
    r"""Project :math:`(*, 3, 3)` matrices onto the essential manifold.

    The two leading singular values are replaced by their mean and the last one by zero.
    """
    MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    U, S, Vh = torch.linalg.svd(M)
    mean = 0.5 * (S[..., 0] + S[..., 1])
    S = torch.stack([mean, mean, torch.zeros_like(mean)], dim=-1)
    return U @ torch.diag_embed(S) @ Vh
