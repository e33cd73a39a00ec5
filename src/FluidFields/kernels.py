"""Elementwise field kernels.

Each kernel mutates a destination array in place over every element,
ghost layers included. Shape checks are the caller's job.
"""

import numpy as np
import numba
from numba import njit, prange


@njit(parallel=True)
def _add_numba(dst: np.ndarray, src: np.ndarray, sign: float):
    """Numba JIT implementation of dst += sign * src on flat views."""
    for i in prange(dst.shape[0]):
        dst[i] += sign * src[i]


@njit(parallel=True)
def _scale_numba(dst: np.ndarray, factor: float):
    for i in prange(dst.shape[0]):
        dst[i] *= factor


@njit(parallel=True)
def _fill_numba(dst: np.ndarray, value: float):
    for i in prange(dst.shape[0]):
        dst[i] = value


@njit(parallel=True)
def _copy_numba(dst: np.ndarray, src: np.ndarray):
    for i in prange(dst.shape[0]):
        dst[i] = src[i]


def _flat(arr: np.ndarray) -> np.ndarray:
    """Flat view of a C-contiguous array."""
    return arr.reshape(-1)


class NumPyKernel:
    """NumPy-based elementwise kernel."""

    def __init__(self, specified_numba_threads: int = 1):
        self.observed_numba_threads = None  # Not applicable for NumPy

    def add(self, dst: np.ndarray, src: np.ndarray):
        np.add(dst, src, out=dst)

    def subtract(self, dst: np.ndarray, src: np.ndarray):
        np.subtract(dst, src, out=dst)

    def scale(self, dst: np.ndarray, factor: float):
        np.multiply(dst, factor, out=dst)

    def fill(self, dst: np.ndarray, value: float):
        dst.fill(value)

    def copy(self, dst: np.ndarray, src: np.ndarray):
        np.copyto(dst, src)

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel:
    """Numba JIT-compiled elementwise kernel."""

    def __init__(self, specified_numba_threads: int = 1):
        # Set requested threads (may be clamped by NUMBA_NUM_THREADS env var)
        if specified_numba_threads is not None:
            numba.set_num_threads(specified_numba_threads)

        # Record what Numba actually reports
        self.observed_numba_threads = numba.get_num_threads()

    def add(self, dst: np.ndarray, src: np.ndarray):
        _add_numba(_flat(dst), _flat(np.ascontiguousarray(src, dtype=dst.dtype)), 1.0)

    def subtract(self, dst: np.ndarray, src: np.ndarray):
        _add_numba(_flat(dst), _flat(np.ascontiguousarray(src, dtype=dst.dtype)), -1.0)

    def scale(self, dst: np.ndarray, factor: float):
        _scale_numba(_flat(dst), float(factor))

    def fill(self, dst: np.ndarray, value: float):
        _fill_numba(_flat(dst), float(value))

    def copy(self, dst: np.ndarray, src: np.ndarray):
        _copy_numba(_flat(dst), _flat(np.ascontiguousarray(src, dtype=dst.dtype)))

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        u1 = np.zeros((warmup_size, warmup_size, warmup_size), dtype=np.float64)
        u2 = np.random.randn(warmup_size, warmup_size, warmup_size)
        self.add(u1, u2)
        self.subtract(u1, u2)
        self.scale(u1, 2.0)
        self.fill(u1, 0.0)
        self.copy(u1, u2)


def create_kernel(use_numba: bool = False, numba_threads: int = 1):
    """Factory: NumbaKernel if requested, NumPyKernel otherwise."""
    if use_numba:
        return NumbaKernel(specified_numba_threads=numba_threads)
    return NumPyKernel()
