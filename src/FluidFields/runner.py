"""Run the distributed field check via mpiexec subprocess."""

import json
import subprocess
import sys


def run_field_check(n_ranks: int = 1, **kwargs) -> dict:
    """Run the field check worker on n_ranks MPI processes.

    Parameters
    ----------
    n_ranks : int
        Number of MPI ranks
    **kwargs
        FieldCheckParams options: global_cells, pad_widths, strategy,
        exchange, periodic, use_numba, numba_threads, scale_factors,
        fill_value, tolerance

    Returns
    -------
    dict
        Metrics of the run (or 'error' key on failure)
    """
    cmd = [
        "mpiexec", "-n", str(n_ranks),
        sys.executable, "-m", "FluidFields.helpers.runner_helper", json.dumps(kwargs),
    ]

    proc = subprocess.run(cmd, capture_output=True, text=True)

    if proc.returncode != 0:
        return {"error": proc.stderr}

    for line in proc.stdout.splitlines():
        if line.startswith("RESULT:"):
            return json.loads(line[len("RESULT:"):])

    return {"error": "No result reported", "stderr": proc.stderr}
