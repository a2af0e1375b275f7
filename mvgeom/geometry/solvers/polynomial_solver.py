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

"""Module containing the functionalities for computing the real roots of polynomial equations.

Coefficients are stored highest degree first, batched along the first dimension, following the
``numpy.roots`` convention.
"""

from typing import Optional, Tuple

import torch

from mvgeom.core import Tensor
from mvgeom.core.check import MVG_CHECK, MVG_CHECK_SHAPE

__all__ = ["find_real_roots", "poly_add", "poly_mul", "poly_val", "solve_quadratic"]


def poly_mul(p: Tensor, q: Tensor) -> Tensor:
    r"""Multiply batched polynomials.

    Args:
        p: coefficients with shape :math:`(B, n+1)`.
        q: coefficients with shape :math:`(B, m+1)`.

    Returns:
        the product coefficients with shape :math:`(B, n+m+1)`.

    Example:
        >>> poly_mul(torch.tensor([[1., 1.]]), torch.tensor([[1., -1.]]))
        tensor([[ 1.,  0., -1.]])
    """
    n, m = p.shape[-1], q.shape[-1]
    outer = p[..., :, None] * q[..., None, :]
    terms = []
    for k in range(n + m - 1):
        i = torch.arange(max(0, k - m + 1), min(k, n - 1) + 1, device=p.device)
        terms.append(outer[..., i, k - i].sum(-1))
    return torch.stack(terms, dim=-1)


def poly_add(p: Tensor, q: Tensor) -> Tensor:
    """Add batched polynomials of possibly different degrees."""
    n, m = p.shape[-1], q.shape[-1]
    if n < m:
        p = torch.nn.functional.pad(p, [m - n, 0])
    elif m < n:
        q = torch.nn.functional.pad(q, [n - m, 0])
    return p + q


def poly_val(coeffs: Tensor, x: Tensor) -> Tensor:
    r"""Evaluate polynomials :math:`(B, n+1)` at points :math:`(B, K)` with Horner's scheme."""
    out = torch.zeros_like(x) + coeffs[..., :1]
    for i in range(1, coeffs.shape[-1]):
        out = out * x + coeffs[..., i : i + 1]
    return out


def solve_quadratic(coeffs: Tensor) -> Tuple[Tensor, Tensor]:
    r"""Solve a batch of quadratic equations for their real roots.

    .. math:: coeffs[0]x^2 + coeffs[1]x + coeffs[2] = 0

    The roots are computed with the cancellation free form :math:`q = -(b + sign(b)\sqrt{\Delta}) / 2`,
    :math:`x_1 = q / a`, :math:`x_2 = c / q`. Equations with a vanishing leading coefficient degrade to the
    linear root in the first slot.

    Args:
        coeffs: The coefficients of the quadratic equation :math:`(B, 3)`.

    Returns:
        the roots with shape :math:`(B, 2)` and a boolean mask :math:`(B, 2)` marking the real ones.
        Invalid slots are filled with zero.

    Example:
        >>> roots, mask = solve_quadratic(torch.tensor([[1., -3., 2.]]))
        >>> roots
        tensor([[2., 1.]])
    """
    MVG_CHECK_SHAPE(coeffs, ["B", "3"])
    a, b, c = coeffs[:, 0], coeffs[:, 1], coeffs[:, 2]
    eps = torch.finfo(coeffs.dtype).eps
    scale = coeffs.abs().amax(dim=-1).clamp_min(torch.finfo(coeffs.dtype).tiny)

    linear = a.abs() <= eps * scale
    delta = b * b - 4.0 * a * c
    real = delta >= 0
    sqrt_delta = torch.sqrt(delta.clamp_min(0.0))
    sign_b = torch.where(b >= 0, torch.ones_like(b), -torch.ones_like(b))
    q = -0.5 * (b + sign_b * sqrt_delta)

    safe_a = torch.where(linear, torch.ones_like(a), a)
    q_nonzero = q.abs() > torch.finfo(coeffs.dtype).tiny
    safe_q = torch.where(q_nonzero, q, torch.ones_like(q))
    x1 = q / safe_a
    x2 = torch.where(q_nonzero, c / safe_q, x1)

    b_nonzero = b.abs() > eps * scale
    safe_b = torch.where(b_nonzero, b, torch.ones_like(b))
    x_lin = -c / safe_b

    roots = torch.stack([torch.where(linear, x_lin, x1), torch.where(linear, torch.zeros_like(x2), x2)], dim=-1)
    mask = torch.stack([torch.where(linear, b_nonzero, real), ~linear & real], dim=-1)
    return torch.where(mask, roots, torch.zeros_like(roots)), mask


def find_real_roots(coeffs: Tensor, tol: Optional[float] = None, polish_iterations: int = 2) -> Tuple[Tensor, Tensor]:
    r"""Find the real roots of batched polynomials through the eigenvalues of their companion matrix.

    The companion matrix of the monic polynomial is built in fp64, its eigenvalues computed with
    ``torch.linalg.eigvals`` and the ones with a negligible imaginary part kept. The surviving roots are
    polished with a few Newton steps on the original polynomial.

    Args:
        coeffs: polynomial coefficients, highest degree first, with shape :math:`(B, n+1)`, :math:`n \geq 1`.
        tol: relative imaginary part under which a root is considered real. Defaults to
            :math:`\sqrt{\epsilon}` of the input dtype.
        polish_iterations: number of Newton steps applied to the real roots.

    Returns:
        the roots with shape :math:`(B, n)` and a boolean mask :math:`(B, n)` marking the real ones.
        Invalid slots are filled with zero.

    Example:
        >>> coeffs = torch.tensor([[1., -6., 11., -6.]], dtype=torch.float64)
        >>> roots, mask = find_real_roots(coeffs)
        >>> mask.sum()
        tensor(3)
    """
    MVG_CHECK_SHAPE(coeffs, ["B", "D"])
    MVG_CHECK(coeffs.shape[-1] >= 2, "A polynomial of degree at least one is required.")
    if tol is None:
        tol = float(torch.finfo(coeffs.dtype).eps) ** 0.5 * 10.0

    B, n = coeffs.shape[0], coeffs.shape[-1] - 1
    c64 = coeffs.to(torch.float64)
    scale = c64.abs().amax(dim=-1, keepdim=True).clamp_min(torch.finfo(torch.float64).tiny)
    c64 = c64 / scale

    # A vanishing leading coefficient pushes the spurious roots towards infinity.
    lead = c64[:, :1]
    tiny = torch.finfo(torch.float64).eps
    lead = torch.where(lead.abs() < tiny, torch.full_like(lead, tiny), lead)
    monic = c64[:, 1:] / lead

    companion = torch.zeros(B, n, n, device=coeffs.device, dtype=torch.float64)
    companion[:, 0, :] = -monic
    if n > 1:
        companion[:, 1:, :-1] = torch.eye(n - 1, device=coeffs.device, dtype=torch.float64)

    eigvals = torch.linalg.eigvals(companion)
    re, im = eigvals.real, eigvals.imag
    mask = (im.abs() <= tol * torch.clamp(re.abs(), min=1.0)) & torch.isfinite(re)

    roots = torch.where(mask, re, torch.zeros_like(re))
    derivative = c64[:, :-1] * torch.arange(n, 0, -1, device=coeffs.device, dtype=torch.float64)
    for _ in range(polish_iterations):
        f = poly_val(c64, roots)
        df = poly_val(derivative, roots)
        ok = mask & (df.abs() > tiny)
        step = f / torch.where(ok, df, torch.ones_like(df))
        roots = torch.where(ok, roots - step, roots)

    roots = torch.where(mask & torch.isfinite(roots), roots, torch.zeros_like(roots))
    return roots.to(coeffs.dtype), mask & torch.isfinite(roots)
