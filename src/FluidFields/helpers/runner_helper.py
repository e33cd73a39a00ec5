"""MPI worker - invoked via: mpiexec -n X python -m FluidFields.helpers.runner_helper '{config}'"""

import json
import logging
import sys
from dataclasses import asdict

import numpy as np
from mpi4py import MPI

from FluidFields import (
    DomainDescriptor,
    FieldCheckMetrics,
    FieldCheckParams,
    PlainVectorField,
    StaggeredVectorField,
)

log = logging.getLogger(__name__)


def _reduce_max(comm, value: float) -> float:
    result = np.empty(1)
    comm.Allreduce(np.array([value], dtype=np.float64), result, op=MPI.MAX)
    return float(result[0])


def global_index_pattern(layout, domain) -> np.ndarray:
    """Encode each point's global (x, y, z) index, wrapped periodically.

    Face-placed points shared by two ranks get the same global index on
    both, so a correct exchange reproduces the pattern in the ghosts.
    """
    cells = domain.global_cells
    idx = [
        (np.arange(n) - pad + start) % m
        for n, pad, start, m in zip(layout.shape, layout.pad_widths, domain.global_start, cells)
    ]
    gx, gy, gz = np.meshgrid(*idx, indexing="ij")
    return 1.0 + gx + cells[0] * (gy + cells[1] * gz)


def check_halos(field: PlainVectorField, domain) -> float:
    """Fill cores with the global pattern, sync, return max ghost error."""
    patterns = []
    for arr, layout in zip(field.components, field.layouts):
        pattern = global_index_pattern(layout, domain)
        arr.fill(-1.0)
        arr[layout.core_slice] = pattern[layout.core_slice]
        patterns.append(pattern)

    field.sync_data()

    error = 0.0
    for arr, pattern, handle in zip(field.components, patterns, field.handles):
        for axis, slabs in handle.geometry.items():
            lo, hi = domain.neighbor_ranks(axis)
            for rank, key in ((lo, "recv_lower"), (hi, "recv_upper")):
                if rank == MPI.PROC_NULL:
                    continue
                s = slabs[key].slices
                error = max(error, float(np.max(np.abs(arr[s] - pattern[s]))))
    return error


def run_check(params: FieldCheckParams, comm=MPI.COMM_WORLD) -> FieldCheckMetrics:
    """Build fields on this rank and check halos and arithmetic identities."""
    t0 = MPI.Wtime()
    params.n_ranks = comm.Get_size()

    domain = DomainDescriptor.create(
        params.global_cells,
        pad_widths=params.pad_widths,
        comm=comm,
        strategy=params.strategy,
        periodic=params.periodic,
        exchange=params.exchange,
    )
    opts = {"use_numba": params.use_numba, "numba_threads": params.numba_threads}

    V = StaggeredVectorField(domain)
    A = PlainVectorField(domain, V, name="A", **opts)
    B = PlainVectorField(domain, V, name="B", **opts)
    C = PlainVectorField(domain, V, name="C", **opts)

    metrics = FieldCheckMetrics(n_ranks=params.n_ranks)
    metrics.local_shapes = {
        name: arr.shape for name, arr in zip(("Vx", "Vy", "Vz"), A.components)
    }
    metrics.halo_max_error = _reduce_max(comm, check_halos(A, domain))

    rng = np.random.default_rng(domain.rank)
    for arr in A.components + B.components + tuple(c.F for c in V.components):
        arr[...] = rng.standard_normal(arr.shape)

    # Additive inverse, ghost cells included
    before = [arr.copy() for arr in A.components]
    A.add_in_place(B).subtract_in_place(B)
    A += V
    A -= V
    local = max(float(np.max(np.abs(a - b))) for a, b in zip(A.components, before))
    metrics.additive_inverse_error = _reduce_max(comm, local)

    # Scale linearity
    k1, k2 = params.scale_factors
    A.assign_from(B)
    A.scale_in_place(k1).scale_in_place(k2)
    C.assign_from(B)
    C *= k1 * k2
    local = max(
        float(np.max(np.abs(a - c) / np.maximum(np.abs(c), 1.0)))
        for a, c in zip(A.components, C.components)
    )
    metrics.scale_linearity_error = _reduce_max(comm, local)

    # Broadcast assignment
    A.assign_from(params.fill_value)
    local_ok = all(np.all(arr == params.fill_value) for arr in A.components)
    metrics.broadcast_ok = bool(comm.allreduce(local_ok, op=MPI.LAND))

    handles = A.handles + B.handles
    local_ok = len({id(h) for h in handles}) == 6 and all(
        h.array is arr for h, arr in zip(handles, A.components + B.components)
    )
    metrics.distinct_handles = bool(comm.allreduce(local_ok, op=MPI.LAND))
    metrics.halo_bytes = int(comm.allreduce(A.halo_size_bytes(), op=MPI.SUM))

    for f in (A, B, C, V):
        f.free()

    metrics.wall_time = _reduce_max(comm, MPI.Wtime() - t0)
    return metrics


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config = json.loads(argv[0]) if argv else {}
    comm = MPI.COMM_WORLD
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    params = FieldCheckParams(**config)
    metrics = run_check(params, comm)

    if comm.Get_rank() == 0:
        result = asdict(metrics)
        result["passed"] = metrics.passed(params.tolerance)
        log.info(f"Field check on {params.n_ranks} ranks: passed={result['passed']}")
        print(f"RESULT:{json.dumps(result)}")


if __name__ == "__main__":
    main()
