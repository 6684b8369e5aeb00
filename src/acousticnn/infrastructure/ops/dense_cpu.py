"""
CPU dense-matrix kernels for trainable layers (NumPy backend).

This module is the boundary between layer code and array math. Layers express
their numeric work as calls into these kernels instead of touching NumPy
expressions directly, which keeps the update rules readable and gives tests a
single place to check the arithmetic.

Implemented kernels
-------------------
- Transpose-aware matrix multiply-accumulate (`add_mat_mat`)
- Row-broadcast vector add (`add_vec_to_rows`)
- Row-sum reduction into a vector (`add_row_sum_mat`)
- Symmetric in-place clamp (`clamp_`)
- Elementwise multiply-accumulate (`add_mat_mat_elements`)
- Uniform random fill (`rand_uniform`)
- AdaGrad / RMSProp accumulator updates and the inverse-sqrt step scale

Design notes
------------
- All buffers are float32. Kernels that end with an underscore or take an
  `out` argument mutate in place and return the mutated buffer.
- `ADAGRAD_EPSILON` and `RMSPROP_DECAY` are fixed: persisted accumulators are
  only meaningful if every update, before and after a reload, uses the same
  constants.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

FLOAT_DTYPE = np.float32

ADAGRAD_EPSILON: float = 1e-8
RMSPROP_DECAY: float = 0.9


def _op(a: np.ndarray, trans: bool) -> np.ndarray:
    return a.T if trans else a


def zeros(shape: Tuple[int, ...]) -> np.ndarray:
    """Allocate a zero-filled float32 buffer."""
    return np.zeros(shape, dtype=FLOAT_DTYPE)


def add_mat_mat(
    out: np.ndarray,
    alpha: float,
    a: np.ndarray,
    trans_a: bool,
    b: np.ndarray,
    trans_b: bool,
    beta: float,
) -> np.ndarray:
    """
    In-place `out = beta * out + alpha * op(a) @ op(b)`.

    Parameters
    ----------
    out : np.ndarray
        Destination matrix, mutated in place.
    alpha : float
        Scale of the matrix product.
    a, b : np.ndarray
        Operand matrices.
    trans_a, trans_b : bool
        Whether to transpose the corresponding operand.
    beta : float
        Scale applied to the previous contents of `out`. When `beta == 0` the
        previous contents are ignored (they may be uninitialized).

    Returns
    -------
    np.ndarray
        `out`.
    """
    prod = _op(a, trans_a) @ _op(b, trans_b)
    if beta == 0.0:
        np.multiply(prod, alpha, out=out, casting="unsafe")
    else:
        out *= beta
        out += (alpha * prod).astype(FLOAT_DTYPE, copy=False)
    return out


def add_vec_to_rows(
    out: np.ndarray, alpha: float, vec: np.ndarray, beta: float
) -> np.ndarray:
    """
    In-place `out[i, :] = beta * out[i, :] + alpha * vec` for every row `i`.
    """
    if beta == 0.0:
        out[...] = alpha * vec[np.newaxis, :]
    else:
        out *= beta
        out += alpha * vec[np.newaxis, :]
    return out


def add_row_sum_mat(
    out: np.ndarray, alpha: float, mat: np.ndarray, beta: float
) -> np.ndarray:
    """
    In-place `out = beta * out + alpha * sum(mat, axis=0)`.

    The reduction runs over rows, so `out` has one entry per column of `mat`.
    """
    col_sum = mat.sum(axis=0, dtype=FLOAT_DTYPE)
    if beta == 0.0:
        out[...] = alpha * col_sum
    else:
        out *= beta
        out += alpha * col_sum
    return out


def add_mat(out: np.ndarray, alpha: float, other: np.ndarray) -> np.ndarray:
    """In-place `out += alpha * other` (matrices or vectors)."""
    out += (alpha * other).astype(FLOAT_DTYPE, copy=False)
    return out


def scale_(out: np.ndarray, alpha: float) -> np.ndarray:
    """In-place `out *= alpha`."""
    out *= FLOAT_DTYPE(alpha)
    return out


def clamp_(out: np.ndarray, bound: float) -> np.ndarray:
    """
    Clamp every element of `out` into `[-bound, +bound]` in place.

    This is the floor-then-ceiling pair the update rules use for gradient
    clipping. `bound` must be non-negative.
    """
    np.clip(out, -bound, bound, out=out)
    return out


def add_mat_mat_elements(
    out: np.ndarray, alpha: float, a: np.ndarray, b: np.ndarray, beta: float
) -> np.ndarray:
    """
    In-place elementwise `out = beta * out + alpha * (a * b)`.

    Works for matrices and vectors alike.
    """
    if beta != 1.0:
        out *= beta
    out += (alpha * (a * b)).astype(FLOAT_DTYPE, copy=False)
    return out


def rand_uniform(shape: Tuple[int, ...], param_range: float) -> np.ndarray:
    """
    Draw float32 values uniformly from `[-param_range, +param_range]`.

    Uses NumPy's global RNG so callers can seed with `np.random.seed`.
    """
    r = float(param_range)
    return np.random.uniform(-r, r, size=shape).astype(FLOAT_DTYPE)


def adagrad_accu_update(accu: np.ndarray, grad: np.ndarray) -> np.ndarray:
    """
    AdaGrad accumulator update: `accu += grad ** 2` (unbounded sum).
    """
    accu += grad * grad
    return accu


def rmsprop_accu_update(
    accu: np.ndarray, grad: np.ndarray, decay: float = RMSPROP_DECAY
) -> np.ndarray:
    """
    RMSProp accumulator update: `accu = decay * accu + (1 - decay) * grad ** 2`.
    """
    accu *= FLOAT_DTYPE(decay)
    accu += FLOAT_DTYPE(1.0 - decay) * (grad * grad)
    return accu


def adagrad_scale_compute(
    scale: np.ndarray, accu: np.ndarray, eps: float = ADAGRAD_EPSILON
) -> np.ndarray:
    """
    Compute the adaptive step scale `scale = 1 / sqrt(accu + eps)` in place.

    Shared by AdaGrad and RMSProp; only the accumulator update differs.
    """
    np.add(accu, FLOAT_DTYPE(eps), out=scale)
    np.sqrt(scale, out=scale)
    np.reciprocal(scale, out=scale)
    return scale


__all__ = [
    "FLOAT_DTYPE",
    "ADAGRAD_EPSILON",
    "RMSPROP_DECAY",
    zeros.__name__,
    add_mat_mat.__name__,
    add_vec_to_rows.__name__,
    add_row_sum_mat.__name__,
    add_mat.__name__,
    scale_.__name__,
    clamp_.__name__,
    add_mat_mat_elements.__name__,
    rand_uniform.__name__,
    adagrad_accu_update.__name__,
    rmsprop_accu_update.__name__,
    adagrad_scale_compute.__name__,
]
