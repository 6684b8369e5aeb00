"""
Moment statistics for diagnostic layer summaries.

`moment_statistics` renders min, max, mean, variance, skewness and (excess)
kurtosis of an array as a one-line string. Layers use it in `info()` and
`info_gradient()`; the output is for humans and carries no contract beyond
being side-effect free.
"""

from __future__ import annotations

import numpy as np


def _fmt(v: float) -> str:
    return f"{v:.3e}"


def moment_statistics(arr: np.ndarray) -> str:
    """
    Summarize an array's value distribution.

    Parameters
    ----------
    arr : np.ndarray
        A vector or matrix. It is not modified.

    Returns
    -------
    str
        ``"(rows x cols) ( min ..., max ..., mean ..., variance ...,
        skewness ..., kurtosis ... ) "`` for matrices, ``"(dim) ( ... ) "``
        for vectors. Empty or constant inputs report ``nan`` where a moment
        is undefined.
    """
    a = np.asarray(arr, dtype=np.float64)
    shape = " x ".join(str(d) for d in a.shape)
    if a.size == 0:
        return f"({shape}) ( empty ) "

    flat = a.ravel()
    mean = flat.mean()
    centered = flat - mean
    variance = float(np.mean(centered**2))
    with np.errstate(divide="ignore", invalid="ignore"):
        skewness = float(np.mean(centered**3) / variance**1.5) if variance > 0 else float("nan")
        kurtosis = (
            float(np.mean(centered**4) / variance**2 - 3.0) if variance > 0 else float("nan")
        )

    return (
        f"({shape}) ( min {_fmt(flat.min())}, max {_fmt(flat.max())}, "
        f"mean {_fmt(mean)}, variance {_fmt(variance)}, "
        f"skewness {_fmt(skewness)}, kurtosis {_fmt(kurtosis)} ) "
    )
