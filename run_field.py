"""
Field check runner - builds plain and staggered fields on n_ranks processes,
checks halo geometry and arithmetic identities.

Usage:
    python run_field.py
    python run_field.py n_ranks=4 strategy=sliced exchange=numpy
    python run_field.py global_cells=[32,16,16] pad_widths=[2,2,2] --multirun n_ranks=1,2,4
"""

import logging

import hydra
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)

PARAM_KEYS = [
    "global_cells", "pad_widths", "strategy", "exchange", "periodic",
    "use_numba", "numba_threads", "scale_factors", "fill_value", "tolerance",
]


def _params_from_cfg(cfg: DictConfig) -> dict:
    """Plain dict of FieldCheckParams options present in the config."""
    container = OmegaConf.to_container(cfg, resolve=True)
    return {k: container[k] for k in PARAM_KEYS if container.get(k) is not None}


def _run_sequential(params: dict) -> dict:
    """Run the check in this process on a single rank."""
    from dataclasses import asdict
    from mpi4py import MPI
    from FluidFields import FieldCheckParams
    from FluidFields.helpers.runner_helper import run_check

    check = FieldCheckParams(**params)
    metrics = run_check(check, MPI.COMM_WORLD)
    result = asdict(metrics)
    result["passed"] = metrics.passed(check.tolerance)
    return result


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs in-process or spawns MPI based on n_ranks."""
    from FluidFields import run_field_check

    n_ranks = cfg.get("n_ranks", 1)
    params = _params_from_cfg(cfg)
    log.info(f"global_cells={params.get('global_cells')}, n_ranks={n_ranks}, "
             f"{params.get('strategy')}/{params.get('exchange')}")

    result = _run_sequential(params) if n_ranks == 1 else run_field_check(n_ranks, **params)

    if "error" in result:
        log.error(f"Field check failed:\n{result['error']}")
        return

    log.info(f"Done: passed={result['passed']}, halo_error={result['halo_max_error']:.2e}, "
             f"halo_bytes={result['halo_bytes']}, time={result['wall_time']:.3f}s")


if __name__ == "__main__":
    main()
