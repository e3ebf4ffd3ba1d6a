"""
Null calibration of the exposure-aware fitness components.

The transmission and exposure components live on different scales that also
shift with chromosome size. Their means and standard deviations over random
SNP-sets put them on a common footing; the estimate is written once per
analysis and re-read by every later scoring run, including runs on permuted
data.
"""

import json
import logging

import numpy as np

from .config import ExposureAwareMode, IDENTITY_CALIBRATION, NullCalibration, as_analysis_config
from .errors import InsufficientData, IOFailure
from .fitness import score
from .permutation import spawn_replicate_seeds
from .utils import atomic_write, run_chunks

logger = logging.getLogger(__name__)


def _calibration_chunk(seed_chunk, store, mode, chromosome_size, config):
    out = []
    for seed_seq in seed_chunk:
        rng = np.random.default_rng(seed_seq)
        snps = rng.choice(store.n_snps, size=chromosome_size, replace=False)
        result = score(snps.tolist(), store, config=config, mode=mode)
        if not result.is_sentinel:
            out.append(result.component_scores)
    return out


def estimate_null_calibration(store, exposure, chromosome_size, config=None,
                              n_random_sets=1000, seed=None, n_jobs=None,
                              chunk_size=None, show_progress=None):
    """
    Estimate per-component null means and standard deviations.

    Parameters:
    store : GenotypeStore
        Observed genotypes
    exposure : torch.Tensor or ExposureAwareMode
        Exposure design matrix (or a mode carrying it)
    chromosome_size : int
        Size of the random SNP-sets
    config : ScoringConfig or AnalysisConfig, optional
        Scoring constants, plus seed and worker settings when an
        AnalysisConfig
    n_random_sets : int, default 1000
        Number of random SNP-sets to score
    seed : int, optional
        Seed for drawing the SNP-sets
    n_jobs : int, optional
        Number of worker processes (default 1)
    chunk_size : int, optional
        SNP-sets per worker call (default 500)
    show_progress : bool, optional
        Whether to show a progress bar

    Returns:
    NullCalibration
    """
    run = as_analysis_config(config).with_overrides(
        seed=seed, n_jobs=n_jobs, chunk_size=chunk_size, show_progress=show_progress)
    if chromosome_size > store.n_snps:
        raise ValueError(f"Cannot draw {chromosome_size} SNPs from {store.n_snps} columns.")
    if isinstance(exposure, ExposureAwareMode):
        mode = exposure.with_calibration(IDENTITY_CALIBRATION)
    else:
        mode = ExposureAwareMode(exposure=exposure)

    logger.info(f"Estimating null calibration from {n_random_sets} random "
                f"SNP-sets of size {chromosome_size}")
    components = run_chunks(
        _calibration_chunk,
        spawn_replicate_seeds(run.seed, n_random_sets),
        n_jobs=run.n_jobs,
        chunk_size=run.chunk_size,
        show_progress=run.show_progress,
        desc="Null calibration",
        store=store,
        mode=mode,
        chromosome_size=chromosome_size,
        config=run.scoring,
    )
    if len(components) < 2:
        raise InsufficientData("Too few informative random SNP-sets to estimate the null calibration.")

    arr = np.asarray(components, dtype=np.float64)
    null_mean = arr.mean(axis=0)
    null_sd = arr.std(axis=0, ddof=1)
    null_sd = np.where(null_sd > 0, null_sd, 1.0)
    return NullCalibration(null_mean=tuple(null_mean), null_sd=tuple(null_sd))


def save_null_calibration(calibration, path):
    """Write a NullCalibration as JSON."""
    with atomic_write(path) as tmp:
        with open(tmp, 'w') as f:
            json.dump(calibration.to_dict(), f, indent=2)
    return path


def load_null_calibration(path):
    """Read a NullCalibration written by save_null_calibration."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
        return NullCalibration(null_mean=data['null_mean'], null_sd=data['null_sd'])
    except FileNotFoundError as e:
        raise IOFailure("Null calibration file not found", path) from e
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise IOFailure(f"Corrupt null calibration file: {e}", path) from e
