"""Halo exchange handles for distributed field components.

A handle is bound to exactly one array. Its exchange geometry is derived
from local metadata only (shape, core boundary, pad widths and stagger
flags), so construction never communicates. Exchanges happen only when a
caller asks for them.

Slab layout along an exchange axis with ``pad`` ghost layers and a core of
``n`` points (0-based array offsets)::

    recv_lower   [0, pad)
    send_lower   [pad, 2*pad)              cell-centred
                 [pad + 1, 2*pad + 1)      face-placed
    send_upper   [n, n + pad)              cell-centred
                 [n - 1, n - 1 + pad)      face-placed
    recv_upper   [pad + n, 2*pad + n)

Face-placed components share their first and last core face with the
neighbor, so that face is never sent.
"""

from __future__ import annotations

import logging
import weakref

import numpy as np
from mpi4py import MPI

from ..datastructures import AXIS_NAMES, ExchangeSlab
from ..errors import HandleFreedError, ResourceOwnershipError, ShapeMismatchError

log = logging.getLogger(__name__)

# id(array) -> weakref to the live handle bound to it
_bound_arrays: dict[int, weakref.ref] = {}


def compute_exchange_geometry(shape, core_end, pad_widths, stagger) -> dict:
    """Compute send/receive slabs for every axis with a non-zero pad width.

    Parameters
    ----------
    shape : tuple of int
        Full allocated shape of the array.
    core_end : tuple of int
        Number of core points along each axis.
    pad_widths : tuple of int
        Ghost layers on each side of each axis.
    stagger : tuple of bool
        True where the component sits on cell faces along that axis.

    Returns
    -------
    dict
        ``{axis: {"send_lower": ExchangeSlab, ...}}``; axes without ghost
        layers are omitted.
    """
    shape, core_end, pad_widths = tuple(shape), tuple(core_end), tuple(pad_widths)
    if not len(shape) == len(core_end) == len(pad_widths) == len(stagger) == 3:
        raise ShapeMismatchError(
            f"Exchange geometry needs 3 axes: shape={shape}, core_end={core_end}, "
            f"pad_widths={pad_widths}, stagger={tuple(stagger)}"
        )
    for axis in range(3):
        if shape[axis] != core_end[axis] + 2 * pad_widths[axis]:
            raise ShapeMismatchError(
                f"Axis {AXIS_NAMES[axis]}: shape {shape[axis]} != core {core_end[axis]} "
                f"+ 2 * pad {pad_widths[axis]}"
            )

    geometry = {}
    for axis in range(3):
        pad = pad_widths[axis]
        if pad == 0:
            continue
        inset = 1 if stagger[axis] else 0
        if core_end[axis] < pad + inset:
            raise ShapeMismatchError(
                f"Axis {AXIS_NAMES[axis]}: core of {core_end[axis]} points cannot "
                f"supply {pad} ghost layers"
            )

        # Transverse axes span the core region only
        subsizes = list(core_end)
        subsizes[axis] = pad

        def slab(start, axis=axis, subsizes=tuple(subsizes)):
            starts = list(pad_widths)
            starts[axis] = start
            return ExchangeSlab(tuple(starts), subsizes)

        geometry[axis] = {
            "send_lower": slab(pad + inset),
            "send_upper": slab(core_end[axis] - inset),
            "recv_lower": slab(0),
            "recv_upper": slab(pad + core_end[axis]),
        }
    return geometry


def _mpi_base_type(dtype):
    """MPI element type for a real numpy dtype."""
    if dtype == np.float64:
        return MPI.DOUBLE
    if dtype == np.float32:
        return MPI.FLOAT
    raise TypeError(f"Derived-datatype exchange supports float32/float64, got {dtype}")


class HaloExchangeHandle:
    """Ghost-layer exchange for one array, owned by one field component.

    Parameters
    ----------
    array : np.ndarray
        C-contiguous 3D array including ghost layers.
    domain : DomainDescriptor
        Topology and pad widths of the local subdomain.
    core_end : tuple of int
        Number of core points along each axis.
    stagger : tuple of bool
        Face (True) or centre (False) placement along each axis.
    """

    def __init__(self, array: np.ndarray, domain, core_end, stagger):
        self._freed = True
        self._datatypes = {}

        owner = _bound_arrays.get(id(array))
        if owner is not None:
            current = owner()
            if current is not None and current.array is array and not current._freed:
                raise ResourceOwnershipError(
                    "Array is already bound to a live halo exchange handle"
                )
        if not array.flags.c_contiguous:
            raise ValueError("Halo exchange needs a C-contiguous array")

        self.array = array
        self.domain = domain
        self.core_end = tuple(int(n) for n in core_end)
        self.stagger = tuple(bool(s) for s in stagger)
        self.geometry = compute_exchange_geometry(
            array.shape, self.core_end, domain.pad_widths, self.stagger
        )
        if domain.exchange == "custom":
            self._datatypes = self._create_datatypes()

        self._key = id(array)
        _bound_arrays[self._key] = weakref.ref(self)
        self._freed = False
        log.debug(
            f"Halo handle for shape {array.shape}: core_end={self.core_end}, "
            f"stagger={self.stagger}, axes={[AXIS_NAMES[a] for a in self.geometry]}"
        )

    @property
    def freed(self) -> bool:
        return self._freed

    def _create_datatypes(self) -> dict:
        """Create one committed MPI subarray datatype per slab."""
        base = _mpi_base_type(self.array.dtype)
        datatypes = {}
        try:
            for axis, slabs in self.geometry.items():
                for key, slab in slabs.items():
                    dt = base.Create_subarray(
                        list(self.array.shape),
                        list(slab.subsizes),
                        list(slab.starts),
                        order=MPI.ORDER_C,
                    )
                    datatypes[axis, key] = dt
                    dt.Commit()
        except Exception:
            for dt in datatypes.values():
                dt.Free()
            raise
        return datatypes

    def exchange(self):
        """Exchange ghost layers with all neighbors (blocking)."""
        if self._freed:
            raise HandleFreedError("Halo exchange handle has been freed")

        for axis in self.geometry:
            lo, hi = self.domain.neighbor_ranks(axis)
            if lo == MPI.PROC_NULL and hi == MPI.PROC_NULL:
                continue
            tag = axis * 2

            # Send to upper, receive from lower
            self._sendrecv(axis, "send_upper", hi, "recv_lower", lo, tag)
            # Send to lower, receive from upper
            self._sendrecv(axis, "send_lower", lo, "recv_upper", hi, tag + 1)

    def _sendrecv(self, axis, send_key, dest, recv_key, source, tag):
        comm = self.domain.cart_comm
        arr = self.array

        if self.domain.exchange == "custom":
            comm.Sendrecv(
                [arr, 1, self._datatypes[axis, send_key]], dest, tag,
                [arr, 1, self._datatypes[axis, recv_key]], source, tag,
            )
            return

        slabs = self.geometry[axis]
        send = np.ascontiguousarray(arr[slabs[send_key].slices])
        recv = np.empty_like(send)
        comm.Sendrecv(send, dest, tag, recv, source, tag)
        if source != MPI.PROC_NULL:
            arr[slabs[recv_key].slices] = recv

    def halo_size_bytes(self) -> int:
        """Calculate total bytes transferred per exchange."""
        total = 0
        for axis, slabs in self.geometry.items():
            lo, hi = self.domain.neighbor_ranks(axis)
            for rank, key in ((lo, "send_lower"), (hi, "send_upper")):
                if rank != MPI.PROC_NULL:
                    total += slabs[key].size * self.array.itemsize * 2  # send+recv
        return total

    def free(self):
        """Release MPI datatypes and the binding to the array."""
        if self._freed:
            return
        self._freed = True

        if not MPI.Is_finalized():
            for dt in self._datatypes.values():
                if dt != MPI.DATATYPE_NULL:
                    dt.Free()
        self._datatypes = {}

        owner = _bound_arrays.get(self._key)
        if owner is not None and owner() in (None, self):
            del _bound_arrays[self._key]

    def __del__(self):
        """Free MPI datatypes."""
        self.free()


def create_halo_handle(array: np.ndarray, domain, shape, core_end, pad_widths, stagger):
    """Factory: build the exchange handle for one field component.

    ``shape`` and ``pad_widths`` must agree with the array and the domain;
    the handle reads both from there once they are checked.
    """
    if tuple(array.shape) != tuple(shape):
        raise ShapeMismatchError(f"Array shape {array.shape} != declared shape {tuple(shape)}")
    if tuple(pad_widths) != tuple(domain.pad_widths):
        raise ShapeMismatchError(
            f"Pad widths {tuple(pad_widths)} differ from the domain's {domain.pad_widths}"
        )
    return HaloExchangeHandle(array, domain, core_end, stagger)
