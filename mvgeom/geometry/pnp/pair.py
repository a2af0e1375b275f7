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
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SAMPLE_COUNT, MVG_CHECK_SHAPE
from mvgeom.geometry.conversions import convert_points_to_homogeneous
from mvgeom.geometry.pnp.dlt import _mean_isotropic_scale_normalize
from mvgeom.utils.helpers import _torch_svd_cast, check_nullspace_dimension
from mvgeom.utils.misc import eye_like

__all__ = ["solve_pose_from_pair"]


def solve_pose_from_pair(points2: Tensor, points3d: Tensor) -> Tensor:
    r"""Linear estimate of the motion from view 1 to view 2 given points known in the frame of view 1.

    Every point :math:`X` seen at :math:`x_2` in the second view gives the two independent rows of
    :math:`[x_2]_\times [R | t] X = 0`. The :math:`3 \times 4` matrix is the null vector of the
    :math:`2N \times 12` system. Its sign is fixed by a positive determinant of the left block, which is
    then replaced by the closest rotation, and the translation divided by the mean singular value.

    Args:
        points2: normalized image coordinates in the second view :math:`(B, N, 2)` with :math:`N \geq 6`.
        points3d: the points in the frame of the first view, 3d :math:`(B, N, 3)` or homogeneous
            :math:`(B, N, 4)`.

    Returns:
        the transformations from view 1 to view 2 :math:`(B, 3, 4)`.

    Raises:
        DegenerateInputError: with fewer than six points or when the system has a larger null space, as for
            coplanar points.

    Example:
        >>> points3d = torch.tensor([[[0., 0., 4.], [1., 0., 5.], [0., 1., 6.], [1., 1., 4.],
        ...                           [-1., 0.5, 5.], [0.5, -1., 7.]]], dtype=torch.float64)
        >>> points2 = (points3d[..., :2] + torch.tensor([0.5, 0.], dtype=torch.float64)) / points3d[..., 2:]
        >>> pose = solve_pose_from_pair(points2, points3d)
        >>> torch.allclose(pose[0, :, 3], torch.tensor([0.5, 0., 0.], dtype=torch.float64))
        True
    """
    MVG_CHECK_SHAPE(points2, ["B", "N", "2"])
    MVG_CHECK(points3d.dim() == 3 and points3d.shape[-1] in (3, 4), f"Expected (B, N, 3|4). Got {points3d.shape}.")
    MVG_CHECK(points3d.shape[:2] == points2.shape[:2], "Expected one 3d point per observation.")
    MVG_CHECK_SAMPLE_COUNT(points2, 6, what="observed points")

    if points3d.shape[-1] == 3:
        normalized, transform = _mean_isotropic_scale_normalize(points3d)
        X = convert_points_to_homogeneous(normalized)
    else:
        X = points3d / points3d.norm(dim=-1, keepdim=True)
        transform = eye_like(4, points3d)

    zeros = torch.zeros_like(X)
    row_x = torch.cat([X, zeros, -points2[..., :1] * X], dim=-1)
    row_y = torch.cat([zeros, X, -points2[..., 1:] * X], dim=-1)
    system = torch.stack([row_x, row_y], dim=-2).flatten(-3, -2)
    check_nullspace_dimension(system, 1, "pose from point pairs")

    P = _torch_svd_cast(system)[2][..., -1].reshape(-1, 3, 4) @ transform
    P = torch.where(torch.linalg.det(P[..., :3])[:, None, None] < 0, -P, P)

    U, S, V = _torch_svd_cast(P[..., :3])
    R = U @ V.transpose(-2, -1)
    t = P[..., 3:] / S.mean(dim=-1)[:, None, None]
    return torch.cat([R, t], dim=-1)
