"""Domain decomposition with MPI Cartesian topology."""

from __future__ import annotations

from mpi4py import MPI

from ..datastructures import AXIS_NAMES


def _as_triple(value, name: str) -> tuple:
    """Broadcast a scalar to three axes, or check a 3-sequence."""
    if isinstance(value, (list, tuple)):
        if len(value) != 3:
            raise ValueError(f"{name} needs 3 entries, got {len(value)}")
        return tuple(value)
    return (value, value, value)


def split_cells(n_cells: int, n_parts: int) -> tuple[list[int], list[int]]:
    """Split n_cells among n_parts ranks; remainder goes to the lowest ranks."""
    base = n_cells // n_parts
    rem = n_cells % n_parts
    counts = [base + (1 if i < rem else 0) for i in range(n_parts)]
    starts = [sum(counts[:i]) for i in range(n_parts)]
    return counts, starts


class CartesianDecomposition:
    """Handles MPI Cartesian topology and domain splitting.

    Creates a Cartesian communicator and computes how the global block of
    cells is distributed across ranks. Axis order is (x, y, z).

    Parameters
    ----------
    global_cells : int or tuple of int
        Global number of cells (Nx, Ny, Nz).
    comm : MPI.Comm
        MPI communicator.
    strategy : str
        'sliced' for 1D decomposition along x,
        'cubic' for 3D decomposition.
    periodic : bool or tuple of bool
        Periodicity of each axis.
    """

    def __init__(
        self,
        global_cells,
        comm: MPI.Comm = MPI.COMM_WORLD,
        strategy: str = "cubic",
        periodic=False,
    ):
        self.global_cells = tuple(int(n) for n in _as_triple(global_cells, "global_cells"))
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()
        self.strategy = strategy
        self.periodic = tuple(bool(p) for p in _as_triple(periodic, "periodic"))

        if any(n < 1 for n in self.global_cells):
            raise ValueError(f"Global cell counts must be positive: {self.global_cells}")

        # Processor grid dimensions [px, py, pz]
        self.dims = self._compute_dims(strategy)
        for n, p, name in zip(self.global_cells, self.dims, AXIS_NAMES):
            if n < p:
                raise ValueError(
                    f"Cannot split {n} cells along {name} over {p} ranks"
                )

        # Create Cartesian topology
        self.cart_comm = self.comm.Create_cart(
            dims=self.dims, periods=list(self.periodic), reorder=False
        )
        self.coords = tuple(self.cart_comm.Get_coords(self.rank))

        # Discover neighbors
        self.neighbors = self._find_neighbors()

        # Compute local domain
        self.local_cells, self.global_start, self.global_end = self._compute_local_domain()

        # Track physical boundaries
        self.is_boundary = self._find_boundaries()

    def _compute_dims(self, strategy: str) -> list[int]:
        """Compute processor grid dimensions [px, py, pz]."""
        if strategy == "sliced":
            return [self.size, 1, 1]
        elif strategy == "cubic":
            return list(MPI.Compute_dims(self.size, 3))
        else:
            raise ValueError(f"Unknown strategy: {strategy}. Use 'sliced' or 'cubic'.")

    def _find_neighbors(self) -> dict[str, int | None]:
        """Use Cart_shift to find neighbor ranks."""
        neighbors = {}
        for direction, name in enumerate(AXIS_NAMES):
            src, dest = self.cart_comm.Shift(direction, 1)
            neighbors[f"{name}_lower"] = src if src >= 0 else None
            neighbors[f"{name}_upper"] = dest if dest >= 0 else None
        return neighbors

    def _compute_local_domain(self):
        """Compute local cell counts and position in the global block."""
        local_cells, global_start = [], []
        for n_cells, n_parts, coord in zip(self.global_cells, self.dims, self.coords):
            counts, starts = split_cells(n_cells, n_parts)
            local_cells.append(counts[coord])
            global_start.append(starts[coord])

        global_end = tuple(s + n for s, n in zip(global_start, local_cells))
        return tuple(local_cells), tuple(global_start), global_end

    def _find_boundaries(self) -> dict[str, bool]:
        """Determine which faces are physical boundaries."""
        boundaries = {}
        for name in AXIS_NAMES:
            boundaries[f"{name}_lower"] = self.neighbors[f"{name}_lower"] is None
            boundaries[f"{name}_upper"] = self.neighbors[f"{name}_upper"] is None
        return boundaries
