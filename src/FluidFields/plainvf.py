"""Plain vector field laid out like a staggered reference field.

A PlainVectorField holds three scalar arrays with the same shapes and index
bounds as the components of a StaggeredVectorField, but without stagger
flags of its own: arithmetic on it is purely positional. It owns one halo
exchange handle per component, built from the reference component's stagger
flags so that explicit synchronisation exchanges the right layers.

Arithmetic never communicates. Callers must invoke ``sync_data()`` after
any update whose ghost values neighbors need to see.

Example
-------
>>> domain = DomainDescriptor.create((32, 32, 32), pad_widths=1)
>>> V = StaggeredVectorField(domain)
>>> rhs = PlainVectorField(domain, V)
>>> rhs.assign_from(V)
>>> rhs.scale_in_place(0.5).add_in_place(V)
>>> rhs.sync_data()
"""

from __future__ import annotations

import logging
import numbers

import numpy as np
from mpi4py import MPI

from .datastructures import AXIS_NAMES
from .errors import ShapeMismatchError
from .field import StaggeredVectorField
from .kernels import create_kernel
from .mpi.halo import create_halo_handle

log = logging.getLogger(__name__)

COMPONENT_NAMES = ("Vx", "Vy", "Vz")


class PlainVectorField:
    """Three scalar arrays mirroring the layout of a staggered vector field.

    Parameters
    ----------
    domain : DomainDescriptor
        Shared topology and pad widths; read at construction only.
    reference : StaggeredVectorField
        Field whose component shapes and index bounds are copied.
    name : str
        Label used in log and error messages.
    use_numba : bool
        Run elementwise updates through the Numba kernel.
    numba_threads : int
        Thread count requested from Numba.

    Raises
    ------
    ShapeMismatchError
        If a reference component is degenerate or inconsistent with its
        own layout or the domain pad widths.
    """

    def __init__(
        self,
        domain,
        reference: StaggeredVectorField,
        name: str = "",
        use_numba: bool = False,
        numba_threads: int = 1,
    ):
        self.domain = domain
        self.name = name
        self.kernel = create_kernel(use_numba, numba_threads)

        ref_components = self._check_reference(reference)

        self.layouts = tuple(comp.layout for comp in ref_components)
        self._components = tuple(
            np.zeros(comp.layout.shape, dtype=comp.F.dtype) for comp in ref_components
        )

        handles = []
        try:
            for arr, comp in zip(self.components, ref_components):
                handles.append(
                    create_halo_handle(
                        arr,
                        domain,
                        comp.layout.shape,
                        comp.layout.core_end,
                        domain.pad_widths,
                        comp.stagger,
                    )
                )
        except Exception:
            for handle in handles:
                handle.free()
            raise
        self.handles = tuple(handles)

        log.debug(
            f"PlainVectorField {name!r}: shapes {[arr.shape for arr in self.components]}"
        )

    def _check_reference(self, reference) -> tuple:
        """Validate the reference components before allocating anything."""
        if not isinstance(reference, StaggeredVectorField):
            raise TypeError(
                f"Reference must be a StaggeredVectorField, got {type(reference).__name__}"
            )
        components = reference.components
        for label, comp in zip(COMPONENT_NAMES, components):
            comp.layout.validate()
            if comp.F.ndim != 3 or comp.F.shape != comp.layout.shape:
                raise ShapeMismatchError(
                    f"{self.name}: reference {label} data shape {comp.F.shape} "
                    f"!= layout shape {comp.layout.shape}"
                )
            if not np.issubdtype(comp.F.dtype, np.floating):
                raise TypeError(
                    f"{self.name}: reference {label} must be floating point, got {comp.F.dtype}"
                )
        return components

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    # Components are rebound only at construction; each stays tied to its handle
    @property
    def components(self) -> tuple:
        return self._components

    @property
    def Vx(self) -> np.ndarray:
        return self._components[0]

    @property
    def Vy(self) -> np.ndarray:
        return self._components[1]

    @property
    def Vz(self) -> np.ndarray:
        return self._components[2]

    def halo_size_bytes(self) -> int:
        return sum(handle.halo_size_bytes() for handle in self.handles)

    # ------------------------------------------------------------------
    # Operand checks
    # ------------------------------------------------------------------

    def _operand_arrays(self, other, operation: str) -> tuple:
        """Raw arrays of a field operand, checked against self."""
        if isinstance(other, PlainVectorField):
            arrays = other.components
        elif isinstance(other, StaggeredVectorField):
            arrays = tuple(comp.F for comp in other.components)
        else:
            raise TypeError(
                f"{operation}: unsupported operand type {type(other).__name__}"
            )

        for label, mine, theirs in zip(COMPONENT_NAMES, self.components, arrays):
            if mine.shape != theirs.shape:
                raise ShapeMismatchError(
                    f"{operation}: {label} shape {theirs.shape} != {mine.shape}"
                )
            if not np.can_cast(theirs.dtype, mine.dtype, casting="same_kind"):
                raise TypeError(
                    f"{operation}: cannot cast {label} from {theirs.dtype} to {mine.dtype}"
                )
        return arrays

    @staticmethod
    def _check_scalar(value, operation: str):
        if not isinstance(value, numbers.Real):
            raise TypeError(f"{operation}: expected a real scalar, got {type(value).__name__}")

    # ------------------------------------------------------------------
    # Chainable transforms
    # ------------------------------------------------------------------

    def add_in_place(self, other) -> "PlainVectorField":
        """Add a plain or staggered field over the full arrays; returns self."""
        arrays = self._operand_arrays(other, "add")
        for dst, src in zip(self.components, arrays):
            self.kernel.add(dst, src)
        return self

    def subtract_in_place(self, other) -> "PlainVectorField":
        """Subtract a plain or staggered field over the full arrays; returns self."""
        arrays = self._operand_arrays(other, "subtract")
        for dst, src in zip(self.components, arrays):
            self.kernel.subtract(dst, src)
        return self

    def scale_in_place(self, value) -> "PlainVectorField":
        """Multiply every element by a scalar; returns self."""
        self._check_scalar(value, "scale")
        for dst in self.components:
            self.kernel.scale(dst, value)
        return self

    def __iadd__(self, other):
        return self.add_in_place(other)

    def __isub__(self, other):
        return self.subtract_in_place(other)

    def __imul__(self, value):
        return self.scale_in_place(value)

    # ------------------------------------------------------------------
    # Terminal assignment
    # ------------------------------------------------------------------

    def assign_from(self, other) -> None:
        """Overwrite every element from a field operand or a broadcast scalar."""
        if isinstance(other, numbers.Real):
            for dst in self.components:
                self.kernel.fill(dst, other)
            return

        arrays = self._operand_arrays(other, "assign")
        for dst, src in zip(self.components, arrays):
            self.kernel.copy(dst, src)

    # ------------------------------------------------------------------
    # Communication and reductions
    # ------------------------------------------------------------------

    def sync_data(self):
        """Exchange ghost layers of all three components with neighbors."""
        for handle in self.handles:
            handle.exchange()

    def component_max(self, axis) -> float:
        """Global maximum of |component| over the core region."""
        if isinstance(axis, str):
            axis = AXIS_NAMES.index(axis)
        core = self.components[axis][self.layouts[axis].core_slice]
        local_max = float(np.max(np.abs(core))) if core.size else 0.0

        global_max = np.empty(1)
        self.domain.cart_comm.Allreduce(np.array([local_max]), global_max, op=MPI.MAX)
        return float(global_max[0])

    def max_abs(self) -> float:
        return max(self.component_max(axis) for axis in range(3))

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def free(self):
        """Release the three halo handles. Safe to call more than once."""
        for handle in self.handles:
            handle.free()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.free()
        return False
