"""MPI domain decomposition and halo exchange.

This package provides:
- DomainDescriptor: Immutable topology and padding shared by all fields
- CartesianDecomposition: Domain splitting with MPI topology
- HaloExchangeHandle: Per-array ghost-layer exchange (datatype/numpy)
"""

from .decomposition import CartesianDecomposition
from .domain import DomainDescriptor
from .halo import HaloExchangeHandle, compute_exchange_geometry, create_halo_handle

__all__ = [
    "CartesianDecomposition",
    "DomainDescriptor",
    "HaloExchangeHandle",
    "compute_exchange_geometry",
    "create_halo_handle",
]
