"""Staggered scalar and vector fields.

These are the reference fields of the solver: every component carries its
own stagger flags, which decide how many core points it has and which
layers its halo handle exchanges.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .datastructures import ComponentLayout
from .errors import ShapeMismatchError
from .mpi.halo import create_halo_handle

log = logging.getLogger(__name__)

# Default MAC placement: each velocity component sits on the faces normal to it
DEFAULT_STAGGER = {
    "Vx": (True, False, False),
    "Vy": (False, True, False),
    "Vz": (False, False, True),
}


class StaggeredField:
    """One scalar component with stagger flags and a halo handle.

    Parameters
    ----------
    domain : DomainDescriptor
        Shared topology and pad widths.
    stagger : tuple of bool
        True where samples sit on cell faces along (x, y, z).
    layout : ComponentLayout, optional
        Explicit layout; derived from ``domain`` and ``stagger`` if omitted.
    data : np.ndarray, optional
        Initial data of ``layout.shape``; zero-filled if omitted.
    name : str
        Label used in log messages.
    """

    def __init__(
        self,
        domain,
        stagger,
        layout: Optional[ComponentLayout] = None,
        data: Optional[np.ndarray] = None,
        name: str = "",
        dtype=np.float64,
    ):
        self.domain = domain
        self.name = name
        self.stagger = tuple(bool(s) for s in stagger)
        if len(self.stagger) != 3:
            raise ShapeMismatchError(f"{name}: need 3 stagger flags, got {len(self.stagger)}")

        self.layout = layout if layout is not None else domain.component_layout(self.stagger)
        self.layout.validate()

        if data is None:
            data = np.zeros(self.layout.shape, dtype=dtype)
        elif data.shape != self.layout.shape:
            raise ShapeMismatchError(
                f"{name}: data shape {data.shape} != layout shape {self.layout.shape}"
            )
        if not np.issubdtype(data.dtype, np.floating):
            raise TypeError(f"{name}: field data must be floating point, got {data.dtype}")
        self.F = np.ascontiguousarray(data)

        self.handle = create_halo_handle(
            self.F,
            domain,
            self.layout.shape,
            self.layout.core_end,
            self.layout.pad_widths,
            self.stagger,
        )

    @property
    def shape(self):
        return self.F.shape

    def sync_data(self):
        self.handle.exchange()

    def free(self):
        self.handle.free()


class StaggeredVectorField:
    """Three staggered components Vx, Vy, Vz.

    Components default to the MAC arrangement (Vx on x-faces, Vy on
    y-faces, Vz on z-faces) but may be passed in explicitly.
    """

    def __init__(
        self,
        domain,
        vx: Optional[StaggeredField] = None,
        vy: Optional[StaggeredField] = None,
        vz: Optional[StaggeredField] = None,
        name: str = "V",
    ):
        self.domain = domain
        self.name = name

        given = {"Vx": vx, "Vy": vy, "Vz": vz}
        for label, comp in given.items():
            if comp is None:
                given[label] = StaggeredField(
                    domain, DEFAULT_STAGGER[label], name=f"{name}.{label}"
                )
        self.Vx, self.Vy, self.Vz = given["Vx"], given["Vy"], given["Vz"]

        log.debug(
            f"{name}: shapes Vx={self.Vx.shape}, Vy={self.Vy.shape}, Vz={self.Vz.shape}"
        )

    @property
    def components(self) -> tuple:
        return (self.Vx, self.Vy, self.Vz)

    def sync_data(self):
        """Exchange ghost layers of all three components."""
        for comp in self.components:
            comp.sync_data()

    def free(self):
        for comp in self.components:
            comp.free()
