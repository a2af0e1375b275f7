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

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_from_homogeneous, convert_points_to_homogeneous

__all__ = ["adjugate3x3", "batched_dot_product", "transform_points"]


def transform_points(trans_01: Tensor, points_1: Tensor) -> Tensor:
    r"""Apply a projective transformation to a set of points.

    Args:
        trans_01: tensor for transformation matrices of shape :math:`(*, D+1, D+1)`.
        points_1: tensor of points of shape :math:`(*, N, D)`.

    Returns:
        a tensor of N-dimensional points :math:`(*, N, D)`.

    Example:
        >>> points_1 = torch.rand(2, 4, 3)  # BxNx3
        >>> trans_01 = torch.eye(4).view(1, 4, 4)  # Bx4x4
        >>> points_0 = transform_points(trans_01, points_1)  # BxNx3
    """
    if not trans_01.shape[-1] == trans_01.shape[-2] == points_1.shape[-1] + 1:
        raise ValueError(
            f"Input transformation and points do not match. Got {trans_01.shape} and {points_1.shape}."
        )
    points_1_h = convert_points_to_homogeneous(points_1)
    points_0_h = points_1_h @ trans_01.transpose(-2, -1)
    return convert_points_from_homogeneous(points_0_h)


def batched_dot_product(x: Tensor, y: Tensor, keepdim: bool = False) -> Tensor:
    """Return a batched version of .dot()."""
    MVG_CHECK_SHAPE(x, ["*", "N"])
    MVG_CHECK_SHAPE(y, ["*", "N"])
    return (x * y).sum(-1, keepdim)


def adjugate3x3(M: Tensor) -> Tensor:
    r"""Adjugate of 3x3 matrices :math:`(*, 3, 3)`, well defined for singular input.

    The rows of the cofactor matrix are cross products of the rows of ``M``.
    """
    MVG_CHECK_SHAPE(M, ["*", "3", "3"])
    r0, r1, r2 = M[..., 0, :], M[..., 1, :], M[..., 2, :]
    cofactor = torch.stack(
        [torch.linalg.cross(r1, r2, dim=-1), torch.linalg.cross(r2, r0, dim=-1), torch.linalg.cross(r0, r1, dim=-1)],
        dim=-2,
    )
    return cofactor.transpose(-2, -1)
