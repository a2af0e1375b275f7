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


def _per_sample(template: Tensor, input: Tensor, shared_memory: bool) -> Tensor:
    if input.dim() < 1:
        raise ValueError(f"Expected a batched tensor with shape (B, *). Got {tuple(input.shape)}")
    out = template[None].expand(input.shape[0], *template.shape)
    return out if shared_memory else out.clone()


def eye_like(n: int, input: Tensor, shared_memory: bool = False) -> Tensor:
    r"""Return one :math:`N \times N` identity per sample of ``input``.

    Args:
        n: size of the identity :math:`(N)`.
        input: tensor whose leading dimension gives the batch size, device and dtype, with shape :math:`(B, *)`.
        shared_memory: return an expanded view instead of an independent copy per sample.

    Returns:
       the identities with shape :math:`(B, N, N)`.
    """
    if n <= 0:
        raise ValueError(f"The identity size must be positive. Got {n}")
    return _per_sample(torch.eye(n, device=input.device, dtype=input.dtype), input, shared_memory)


def vec_like(n: int, input: Tensor, shared_memory: bool = False) -> Tensor:
    r"""Return one zero column vector :math:`(N, 1)` per sample of ``input``, stacked as :math:`(B, N, 1)`."""
    if n <= 0:
        raise ValueError(f"The vector length must be positive. Got {n}")
    return _per_sample(torch.zeros(n, 1, device=input.device, dtype=input.dtype), input, shared_memory)
