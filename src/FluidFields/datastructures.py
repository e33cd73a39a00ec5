"""Data structures for field layouts, exchange geometry and field checks.

Architecture: layout metadata vs run bookkeeping

                 Geometry (per component)      Run (runner worker)
                 ────────────────────────      ───────────────────
                 ComponentLayout               FieldCheckParams
                 shape, lower_bound,           global_cells, pad_widths,
                 core_upper_bound              strategy, exchange...

                 ExchangeSlab                  FieldCheckMetrics
                 starts, subsizes              halo_errors, identities...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .errors import ShapeMismatchError


AXIS_NAMES = ("x", "y", "z")


# ============================================================================
# Component geometry
# ============================================================================


@dataclass(frozen=True)
class ComponentLayout:
    """Index metadata of one scalar component.

    The core region starts at index 0 along every axis; ghost layers occupy
    the negative indices down to ``lower_bound`` and the indices past
    ``core_upper_bound`` up to ``upper_bound``.

    Parameters
    ----------
    shape : tuple of int
        Full allocated shape including ghost layers.
    lower_bound : tuple of int
        Index of the first allocated element along each axis (``-pad``).
    core_upper_bound : tuple of int
        Index of the last core element along each axis.
    """

    shape: Tuple[int, ...]
    lower_bound: Tuple[int, ...]
    core_upper_bound: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "shape", tuple(int(n) for n in self.shape))
        object.__setattr__(self, "lower_bound", tuple(int(n) for n in self.lower_bound))
        object.__setattr__(
            self, "core_upper_bound", tuple(int(n) for n in self.core_upper_bound)
        )

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def upper_bound(self) -> Tuple[int, ...]:
        """Index of the last allocated element along each axis."""
        return tuple(lo + n - 1 for lo, n in zip(self.lower_bound, self.shape))

    @property
    def core_end(self) -> Tuple[int, ...]:
        """One past the last core index (the core-region boundary)."""
        return tuple(ub + 1 for ub in self.core_upper_bound)

    @property
    def pad_widths(self) -> Tuple[int, ...]:
        return tuple(-lo for lo in self.lower_bound)

    @property
    def core_slice(self) -> Tuple[slice, ...]:
        """Array slice selecting the core region."""
        return tuple(
            slice(pad, pad + end) for pad, end in zip(self.pad_widths, self.core_end)
        )

    def validate(self):
        """Raise ShapeMismatchError for a degenerate or inconsistent layout."""
        if self.ndim != 3:
            raise ShapeMismatchError(f"Expected a 3D layout, got shape {self.shape}")
        if len(self.lower_bound) != 3 or len(self.core_upper_bound) != 3:
            raise ShapeMismatchError(
                f"Bounds {self.lower_bound}, {self.core_upper_bound} do not match "
                f"shape {self.shape}"
            )
        if any(n <= 0 for n in self.shape):
            raise ShapeMismatchError(f"Zero-sized axis in shape {self.shape}")
        if any(lo > 0 for lo in self.lower_bound):
            raise ShapeMismatchError(
                f"Lower bound {self.lower_bound} must not exceed the core origin"
            )
        for axis in range(3):
            if self.core_end[axis] <= 0 or self.core_upper_bound[axis] > self.upper_bound[axis]:
                raise ShapeMismatchError(
                    f"Core region ending at {self.core_upper_bound} does not fit "
                    f"in shape {self.shape} with lower bound {self.lower_bound}"
                )


@dataclass(frozen=True)
class ExchangeSlab:
    """Offset and extent of one slab of cells (0-based array offsets)."""

    starts: Tuple[int, int, int]
    subsizes: Tuple[int, int, int]

    @property
    def slices(self) -> Tuple[slice, ...]:
        return tuple(slice(s, s + n) for s, n in zip(self.starts, self.subsizes))

    @property
    def size(self) -> int:
        n = 1
        for s in self.subsizes:
            n *= s
        return n


# ============================================================================
# Field check run (runner worker)
# ============================================================================


@dataclass
class FieldCheckParams:
    """Run configuration for the MPI field check worker.

    Identical across all MPI ranks.
    """

    global_cells: Tuple[int, int, int] = (16, 16, 16)
    pad_widths: Tuple[int, int, int] = (1, 1, 1)
    strategy: str = "cubic"  # "sliced" | "cubic"
    exchange: str = "custom"  # "custom" | "numpy"
    periodic: Tuple[bool, bool, bool] = (False, False, False)

    use_numba: bool = False
    numba_threads: int = 1

    scale_factors: Tuple[float, float] = (1.5, -0.25)
    fill_value: float = 5.0
    tolerance: float = 1e-12

    n_ranks: int = field(init=False, default=1)

    def __post_init__(self):
        self.global_cells = tuple(int(n) for n in self.global_cells)
        self.pad_widths = tuple(int(p) for p in self.pad_widths)
        self.periodic = tuple(bool(p) for p in self.periodic)
        self.scale_factors = tuple(float(s) for s in self.scale_factors)


@dataclass
class FieldCheckMetrics:
    """Aggregated results of a field check, reduced onto rank 0."""

    n_ranks: int = 1
    halo_max_error: Optional[float] = None
    additive_inverse_error: Optional[float] = None
    scale_linearity_error: Optional[float] = None
    broadcast_ok: bool = False
    distinct_handles: bool = False
    halo_bytes: int = 0
    local_shapes: Dict[str, Tuple[int, int, int]] = field(default_factory=dict)
    wall_time: Optional[float] = None

    def passed(self, tolerance: float) -> bool:
        """True if halos are exact and the arithmetic identities hold."""
        return (
            self.halo_max_error == 0.0
            and self.additive_inverse_error is not None
            and self.additive_inverse_error <= tolerance
            and self.scale_linearity_error is not None
            and self.scale_linearity_error <= tolerance
            and self.broadcast_ok
            and self.distinct_handles
        )
