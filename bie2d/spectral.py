"""Periodic spectral differentiation on uniform parameter grids.

All routines assume N samples f_j = f(t_j) of a 2*pi-periodic function at
t_j = 2*pi*j/N and act along axis 0, so (N, n) column stacks are
differentiated column by column.
"""

import logging

import numpy as np
from scipy import fft as sp_fft

logger = logging.getLogger(__name__)


def fourier_wavenumbers(n: int) -> np.ndarray:
    """Integer wavenumbers in FFT order with the Nyquist mode set to zero.

    Parameters
    ----------
    n : int
        Number of samples.

    Returns
    -------
    k : np.ndarray, float64, shape (n,)
    """
    if n < 1:
        raise ValueError(f"Need at least one sample, got n={n}")
    k = sp_fft.fftfreq(n, d=1.0 / n)  # (n,)
    if n % 2 == 0:
        k[n // 2] = 0.0  # Nyquist mode has no well-defined derivative
    return k


def perispecdiff(f: np.ndarray) -> np.ndarray:
    """Spectral derivative d/dt of periodic samples on [0, 2*pi).

    Parameters
    ----------
    f : np.ndarray, shape (N,) or (N, n)
        Samples of a smooth periodic function (real or complex).

    Returns
    -------
    fp : np.ndarray, same shape as f
        Derivative samples. Real if f is real.
    """
    f = np.asarray(f)
    if f.ndim == 0 or f.shape[0] == 0:
        raise ValueError(f"perispecdiff needs a non-empty sample array, got shape {f.shape}")
    n = f.shape[0]
    ik = 1j * fourier_wavenumbers(n)  # (N,)
    ik = ik.reshape((n,) + (1,) * (f.ndim - 1))
    fp = sp_fft.ifft(sp_fft.fft(f, axis=0) * ik, axis=0)
    if np.isrealobj(f):
        return fp.real
    return fp
