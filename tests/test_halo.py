"""Tests for halo exchange geometry and handles."""

import gc

import numpy as np
import pytest
from mpi4py import MPI

from FluidFields import (
    HaloExchangeHandle,
    HandleFreedError,
    PlainVectorField,
    ResourceOwnershipError,
    ShapeMismatchError,
    StaggeredField,
    StaggeredVectorField,
    compute_exchange_geometry,
    create_halo_handle,
)
from FluidFields.helpers.runner_helper import check_halos
from FluidFields.mpi import halo as halo_module


class TestExchangeGeometry:
    """Slab offsets and extents derived from local metadata."""

    def test_centre_slabs(self):
        geom = compute_exchange_geometry((8, 4, 4), (4, 4, 4), (2, 0, 0), (False,) * 3)

        assert list(geom) == [0]
        slabs = geom[0]
        assert slabs["recv_lower"].starts == (0, 0, 0)
        assert slabs["send_lower"].starts == (2, 0, 0)
        assert slabs["send_upper"].starts == (4, 0, 0)
        assert slabs["recv_upper"].starts == (6, 0, 0)
        for slab in slabs.values():
            assert slab.subsizes == (2, 4, 4)

    def test_face_slabs_skip_shared_face(self):
        geom = compute_exchange_geometry((9, 4, 4), (5, 4, 4), (2, 0, 0), (True, False, False))

        slabs = geom[0]
        assert slabs["send_lower"].starts == (3, 0, 0)
        assert slabs["send_upper"].starts == (4, 0, 0)
        assert slabs["recv_lower"].starts == (0, 0, 0)
        assert slabs["recv_upper"].starts == (7, 0, 0)

    def test_transverse_axes_span_core_only(self):
        geom = compute_exchange_geometry((6, 7, 8), (4, 5, 4), (1, 1, 2), (False, True, False))

        assert geom[0]["send_lower"].starts == (1, 1, 2)
        assert geom[0]["send_lower"].subsizes == (1, 5, 4)
        assert geom[1]["send_lower"].starts == (1, 2, 2)
        assert geom[1]["send_upper"].starts == (1, 4, 2)
        assert geom[2]["recv_upper"].starts == (1, 1, 6)
        assert geom[2]["recv_upper"].subsizes == (4, 5, 2)

    def test_exactly_pad_layers_each_side(self):
        geom = compute_exchange_geometry((10, 10, 10), (4, 4, 4), (3, 3, 3), (True, True, False))
        for axis, slabs in geom.items():
            for slab in slabs.values():
                assert slab.subsizes[axis] == 3

    def test_shape_inconsistent_with_core_and_pad(self):
        with pytest.raises(ShapeMismatchError):
            compute_exchange_geometry((8, 4, 4), (4, 4, 4), (1, 0, 0), (False,) * 3)

    def test_core_too_thin_for_face_exchange(self):
        compute_exchange_geometry((6, 4, 4), (2, 4, 4), (2, 0, 0), (False,) * 3)
        with pytest.raises(ShapeMismatchError):
            compute_exchange_geometry((6, 4, 4), (2, 4, 4), (2, 0, 0), (True, False, False))

    def test_not_three_dimensional(self):
        with pytest.raises(ShapeMismatchError):
            compute_exchange_geometry((8, 4), (4, 4), (2, 0), (False, False))


@pytest.mark.parametrize("exchange", ["custom", "numpy"])
class TestHaloHandle:
    """Handle construction, ownership and exchange on one rank."""

    def test_ownership_is_exclusive(self, make_domain, exchange):
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        arr = np.zeros((6, 6, 6))

        handle = HaloExchangeHandle(arr, domain, (4, 4, 4), (False,) * 3)
        with pytest.raises(ResourceOwnershipError):
            HaloExchangeHandle(arr, domain, (4, 4, 4), (False,) * 3)

        handle.free()
        HaloExchangeHandle(arr, domain, (4, 4, 4), (False,) * 3).free()

    def test_collected_handle_releases_array(self, make_domain, exchange):
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        arr = np.zeros((6, 6, 6))

        handle = HaloExchangeHandle(arr, domain, (4, 4, 4), (False,) * 3)
        del handle
        gc.collect()

        HaloExchangeHandle(arr, domain, (4, 4, 4), (False,) * 3).free()

    def test_free_is_idempotent(self, make_domain, exchange):
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        handle = HaloExchangeHandle(np.zeros((6, 6, 6)), domain, (4, 4, 4), (False,) * 3)

        handle.free()
        handle.free()
        assert handle.freed
        with pytest.raises(HandleFreedError):
            handle.exchange()

    def test_staggered_field_rejects_bound_data(self, make_domain, exchange):
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        first = StaggeredField(domain, (True, False, False))

        with pytest.raises(ResourceOwnershipError):
            StaggeredField(domain, (True, False, False), data=first.F)
        first.free()

    def test_factory_checks_declared_geometry(self, make_domain, exchange):
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        arr = np.zeros((6, 6, 6))

        with pytest.raises(ShapeMismatchError):
            create_halo_handle(arr, domain, (6, 6, 7), (4, 4, 4), (1, 1, 1), (False,) * 3)
        with pytest.raises(ShapeMismatchError):
            create_halo_handle(arr, domain, (6, 6, 6), (4, 4, 4), (2, 2, 2), (False,) * 3)

        create_halo_handle(arr, domain, (6, 6, 6), (4, 4, 4), (1, 1, 1), (False,) * 3).free()

    def test_boundary_ghosts_untouched(self, make_domain, exchange):
        """Without neighbors an exchange leaves ghost layers as they were."""
        domain = make_domain(global_cells=4, pad_widths=1, exchange=exchange)
        V = StaggeredVectorField(domain)
        P = PlainVectorField(domain, V)

        P.assign_from(-7.0)
        P.Vx[P.layouts[0].core_slice] = 1.0
        P.sync_data()

        assert np.all(P.Vx[0] == -7.0)
        assert np.all(P.Vx[-1] == -7.0)
        assert P.halo_size_bytes() == 0
        P.free()
        V.free()

    def test_periodic_centre_and_face_along_x(self, make_domain, exchange):
        """Self-exchange across a periodic axis: faces skip the shared layer."""
        domain = make_domain(
            global_cells=(4, 3, 3), pad_widths=(1, 0, 0),
            periodic=(True, False, False), exchange=exchange,
        )
        V = StaggeredVectorField(domain)
        P = PlainVectorField(domain, V)
        assert P.Vx.shape == (7, 3, 3)
        assert P.Vy.shape == (6, 4, 3)

        P.Vx[1:6] = np.arange(5.0)[:, None, None]
        P.Vy[1:5] = np.arange(4.0)[:, None, None]
        P.sync_data()

        # Face-placed: face 4 coincides with face 0
        assert np.all(P.Vx[0] == 3.0)
        assert np.all(P.Vx[6] == 1.0)
        # Cell-centred
        assert np.all(P.Vy[0] == 3.0)
        assert np.all(P.Vy[5] == 0.0)
        P.free()
        V.free()

    @pytest.mark.parametrize("pads", [(1, 1, 1), (2, 1, 3), (2, 0, 2)])
    def test_periodic_ghosts_match_global_pattern(self, make_domain, exchange, pads):
        domain = make_domain(
            global_cells=(5, 6, 4), pad_widths=pads, periodic=True, exchange=exchange,
        )
        V = StaggeredVectorField(domain)
        P = PlainVectorField(domain, V)

        assert check_halos(P, domain) == 0.0
        assert P.halo_size_bytes() > 0
        P.free()
        V.free()


class _RecordingDatatype:
    def __init__(self, log):
        self.log = log
        self.committed = False

    def Commit(self):
        self.committed = True

    def Free(self):
        self.log.append(self)


class _FailingBaseType:
    """Creates subarray types until the limit is hit, then raises."""

    def __init__(self, limit):
        self.limit = limit
        self.created = []
        self.freed = []

    def Create_subarray(self, sizes, subsizes, starts, order=None):
        if len(self.created) == self.limit:
            raise MemoryError("out of datatypes")
        dt = _RecordingDatatype(self.freed)
        self.created.append(dt)
        return dt


class TestDatatypeCleanup:
    def test_partial_creation_frees_committed_types(self, make_domain, monkeypatch):
        domain = make_domain(global_cells=4, pad_widths=1, exchange="custom")
        base = _FailingBaseType(limit=5)
        monkeypatch.setattr(halo_module, "_mpi_base_type", lambda dtype: base)

        with pytest.raises(MemoryError):
            HaloExchangeHandle(np.zeros((6, 6, 6)), domain, (4, 4, 4), (False,) * 3)

        assert len(base.created) == 5
        assert all(dt.committed for dt in base.created)
        assert sorted(map(id, base.freed)) == sorted(map(id, base.created))
