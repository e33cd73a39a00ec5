"""Shared fixtures: single-rank domains on MPI.COMM_WORLD."""

import numpy as np
import pytest
from mpi4py import MPI

from FluidFields import DomainDescriptor, StaggeredVectorField


def _single_rank_domain(**kwargs):
    if MPI.COMM_WORLD.Get_size() != 1:
        pytest.skip("Unit tests run on a single rank")
    return DomainDescriptor.create(comm=MPI.COMM_WORLD, **kwargs)


@pytest.fixture
def make_domain():
    """Factory for single-rank domains."""
    return _single_rank_domain


@pytest.fixture
def domain():
    """4x4x4 cells, one ghost layer, no periodicity."""
    return _single_rank_domain(global_cells=(4, 4, 4), pad_widths=1)


@pytest.fixture
def reference(domain):
    """MAC-staggered reference field on the default domain."""
    V = StaggeredVectorField(domain)
    yield V
    V.free()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
