"""Tests for domain decomposition and the domain descriptor."""

import dataclasses

import pytest
from mpi4py import MPI

from FluidFields import CartesianDecomposition
from FluidFields.mpi.decomposition import split_cells


class TestSplitCells:
    """Tests for splitting cells over ranks along one axis."""

    @pytest.mark.parametrize("n_cells,n_parts", [(16, 4), (17, 4), (100, 7), (5, 5)])
    def test_full_coverage_no_overlaps(self, n_cells, n_parts):
        """Each cell owned by exactly one rank."""
        counts, starts = split_cells(n_cells, n_parts)

        assert sum(counts) == n_cells
        assert starts[0] == 0
        for i in range(1, n_parts):
            assert starts[i] == starts[i - 1] + counts[i - 1]

    def test_remainder_goes_to_lowest_ranks(self):
        counts, _ = split_cells(10, 4)
        assert counts == [3, 3, 2, 2]


class TestCartesianDecomposition:
    """Single-rank decomposition on COMM_WORLD."""

    @pytest.fixture(autouse=True)
    def _single_rank(self):
        if MPI.COMM_WORLD.Get_size() != 1:
            pytest.skip("Unit tests run on a single rank")

    @pytest.mark.parametrize("strategy", ["sliced", "cubic"])
    def test_single_rank_owns_everything(self, strategy):
        decomp = CartesianDecomposition((8, 6, 4), MPI.COMM_WORLD, strategy)

        assert decomp.dims == [1, 1, 1]
        assert decomp.local_cells == (8, 6, 4)
        assert decomp.global_start == (0, 0, 0)
        assert decomp.global_end == (8, 6, 4)
        assert all(n is None for n in decomp.neighbors.values())
        assert all(decomp.is_boundary.values())

    def test_periodic_axis_wraps_to_self(self):
        decomp = CartesianDecomposition(8, MPI.COMM_WORLD, periodic=(True, False, False))

        assert decomp.neighbors["x_lower"] == 0
        assert decomp.neighbors["x_upper"] == 0
        assert decomp.neighbors["y_lower"] is None
        assert not decomp.is_boundary["x_upper"]

    def test_invalid_strategy(self):
        """Unknown strategy raises ValueError."""
        with pytest.raises(ValueError):
            CartesianDecomposition(8, MPI.COMM_WORLD, strategy="invalid")

    def test_zero_cells_rejected(self):
        with pytest.raises(ValueError):
            CartesianDecomposition((8, 0, 8), MPI.COMM_WORLD)


class TestDomainDescriptor:
    """Tests for the immutable domain descriptor."""

    def test_is_immutable(self, domain):
        with pytest.raises(dataclasses.FrozenInstanceError):
            domain.pad_widths = (2, 2, 2)
        with pytest.raises(TypeError):
            domain.neighbors["x_lower"] = 3

    def test_scalar_pad_broadcast(self, domain):
        assert domain.pad_widths == (1, 1, 1)
        assert domain.global_cells == (4, 4, 4)

    def test_missing_neighbors_are_proc_null(self, domain):
        for axis in range(3):
            assert domain.neighbor_ranks(axis) == (MPI.PROC_NULL, MPI.PROC_NULL)

    def test_component_layout_centre_and_face(self, make_domain):
        domain = make_domain(global_cells=(4, 5, 6), pad_widths=(2, 1, 0))

        centre = domain.component_layout((False, False, False))
        assert centre.shape == (8, 7, 6)
        assert centre.lower_bound == (-2, -1, 0)
        assert centre.core_upper_bound == (3, 4, 5)

        face_x = domain.component_layout((True, False, False))
        assert face_x.shape == (9, 7, 6)
        assert face_x.core_upper_bound == (4, 4, 5)
        assert face_x.upper_bound == (6, 5, 5)

    def test_negative_pad_rejected(self, make_domain):
        with pytest.raises(ValueError):
            make_domain(global_cells=4, pad_widths=(1, -1, 1))

    def test_unknown_exchange_rejected(self, make_domain):
        with pytest.raises(ValueError):
            make_domain(global_cells=4, exchange="shared-memory")
