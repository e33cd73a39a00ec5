"""Immutable domain descriptor shared by every field of a run.

The descriptor bundles the Cartesian communicator, neighbor ranks and
ghost-layer widths of the local subdomain. It is built once, before any
field, and passed by reference to each field constructor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from mpi4py import MPI

from ..datastructures import AXIS_NAMES, ComponentLayout
from .decomposition import CartesianDecomposition, _as_triple

log = logging.getLogger(__name__)

EXCHANGE_TYPES = ("custom", "numpy")


@dataclass(frozen=True, eq=False)
class DomainDescriptor:
    """Rank topology and padding widths of one subdomain.

    Example
    -------
    >>> domain = DomainDescriptor.create((32, 32, 32), pad_widths=1)
    >>> layout = domain.component_layout((True, False, False))
    >>> layout.shape  # face-placed along x: one extra core point
    """

    cart_comm: MPI.Cartcomm
    rank: int
    dims: Tuple[int, int, int]
    coords: Tuple[int, int, int]
    neighbors: Mapping[str, Optional[int]]
    global_cells: Tuple[int, int, int]
    local_cells: Tuple[int, int, int]
    global_start: Tuple[int, int, int]
    pad_widths: Tuple[int, int, int]
    exchange: str = "custom"

    def __post_init__(self):
        if any(p < 0 for p in self.pad_widths):
            raise ValueError(f"Pad widths must be non-negative: {self.pad_widths}")
        if self.exchange not in EXCHANGE_TYPES:
            raise ValueError(f"Unknown halo_exchange type: {self.exchange}")
        object.__setattr__(self, "neighbors", MappingProxyType(dict(self.neighbors)))

    @classmethod
    def create(
        cls,
        global_cells,
        pad_widths=1,
        comm: MPI.Comm = MPI.COMM_WORLD,
        strategy: str = "cubic",
        periodic=False,
        exchange: str = "custom",
    ) -> "DomainDescriptor":
        """Decompose ``global_cells`` over ``comm`` and build the descriptor."""
        decomp = CartesianDecomposition(global_cells, comm, strategy, periodic)
        pads = tuple(int(p) for p in _as_triple(pad_widths, "pad_widths"))

        domain = cls(
            cart_comm=decomp.cart_comm,
            rank=decomp.rank,
            dims=tuple(decomp.dims),
            coords=decomp.coords,
            neighbors=decomp.neighbors,
            global_cells=decomp.global_cells,
            local_cells=decomp.local_cells,
            global_start=decomp.global_start,
            pad_widths=pads,
            exchange=exchange,
        )
        log.debug(
            f"Rank {domain.rank}: dims={domain.dims}, coords={domain.coords}, "
            f"local_cells={domain.local_cells}, pad_widths={domain.pad_widths}"
        )
        return domain

    def neighbor_ranks(self, axis: int) -> tuple[int, int]:
        """Get neighbor ranks for an axis, defaulting to MPI.PROC_NULL."""
        name = AXIS_NAMES[axis]
        lo = self.neighbors.get(f"{name}_lower")
        hi = self.neighbors.get(f"{name}_upper")
        return (lo if lo is not None else MPI.PROC_NULL,
                hi if hi is not None else MPI.PROC_NULL)

    def component_layout(self, stagger) -> ComponentLayout:
        """Layout of a component placed on faces (True) or centres per axis.

        Face-placed components carry one extra core point along the
        staggered axis; it coincides with the neighbor's first face.
        """
        core = tuple(n + (1 if s else 0) for n, s in zip(self.local_cells, stagger))
        return ComponentLayout(
            shape=tuple(n + 2 * p for n, p in zip(core, self.pad_widths)),
            lower_bound=tuple(-p for p in self.pad_widths),
            core_upper_bound=tuple(n - 1 for n in core),
        )
