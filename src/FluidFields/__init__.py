"""Distributed staggered-grid fields.

Building blocks of a finite-difference flow solver on an MPI domain
decomposition: staggered reference fields, plain vector fields that mirror
their layout, and the halo exchange handles that keep ghost layers in sync
on request.

Fields
------
- StaggeredField / StaggeredVectorField: components with stagger flags
- PlainVectorField: positional arithmetic over a staggered layout

Parallel (MPI):
- DomainDescriptor: topology and pad widths of the local subdomain
- HaloExchangeHandle: ghost-layer exchange bound to one array
"""

from .datastructures import (
    ComponentLayout,
    ExchangeSlab,
    FieldCheckParams,
    FieldCheckMetrics,
)
from .errors import (
    FieldError,
    HandleFreedError,
    ResourceOwnershipError,
    ShapeMismatchError,
)
from .kernels import NumPyKernel, NumbaKernel, create_kernel
from .mpi import (
    CartesianDecomposition,
    DomainDescriptor,
    HaloExchangeHandle,
    compute_exchange_geometry,
    create_halo_handle,
)
from .field import StaggeredField, StaggeredVectorField
from .plainvf import PlainVectorField
from .runner import run_field_check

__all__ = [
    # Data structures
    "ComponentLayout",
    "ExchangeSlab",
    "FieldCheckParams",
    "FieldCheckMetrics",
    # Errors
    "FieldError",
    "ShapeMismatchError",
    "ResourceOwnershipError",
    "HandleFreedError",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    "create_kernel",
    # MPI
    "CartesianDecomposition",
    "DomainDescriptor",
    "HaloExchangeHandle",
    "compute_exchange_geometry",
    "create_halo_handle",
    # Fields
    "StaggeredField",
    "StaggeredVectorField",
    "PlainVectorField",
    # Runner
    "run_field_check",
]
