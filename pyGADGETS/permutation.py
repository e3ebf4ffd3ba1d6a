"""
Permuted datasets for permutation-based hypothesis testing.

Label permutation swaps case and complement within each family with
probability 0.5. Exposure permutation shuffles the exposure rows across
families while the genotypes stay put. Every replicate draws from its own
child of one SeedSequence, so a replicate's content depends only on the seed
and its number, not on how the work is split between processes.
"""

import logging
import pickle
from pathlib import Path

import numpy as np
import torch

from .config import ExposureAwareMode, as_analysis_config
from .errors import IOFailure
from .genotype_store import GenotypeStore, normalize_missing
from .utils import atomic_write, run_chunks

logger = logging.getLogger(__name__)

GENOTYPE_TEMPLATE = "genotypes.permute{}.pt"
EXPOSURE_TEMPLATE = "exposure.permute{}.pt"


def spawn_replicate_seeds(seed, n):
    """Independent, reproducible seed sequences, one per replicate."""
    return np.random.SeedSequence(seed).spawn(n)


def permute_case_complement(case, comp, rng):
    """
    Swap case and complement rows for a random half of the families.

    Parameters:
    case : array-like
        families x SNPs case genotypes
    comp : array-like
        families x SNPs complement genotypes
    rng : np.random.Generator
        Random source

    Returns:
    tuple
        (case, complement) int8 tensors with missing values set to MISSING
    """
    case = normalize_missing(case)
    comp = normalize_missing(comp)
    flip = torch.from_numpy(rng.random(case.shape[0]) < 0.5).unsqueeze(1)
    return torch.where(flip, comp, case), torch.where(flip, case, comp)


def permute_exposure(exposure, rng):
    """Reassign the exposure rows to families by a full random permutation."""
    exposure = torch.as_tensor(exposure)
    order = torch.from_numpy(rng.permutation(exposure.shape[0]))
    return exposure[order]


def _save_tensors(obj, path):
    with atomic_write(path) as tmp:
        torch.save(obj, tmp)
    return path


def _genotype_chunk(items, case, comp, out_dir):
    paths = []
    for replicate, seed_seq in items:
        case_perm, comp_perm = permute_case_complement(case, comp, np.random.default_rng(seed_seq))
        path = Path(out_dir) / GENOTYPE_TEMPLATE.format(replicate)
        paths.append(_save_tensors({'case': case_perm, 'complement': comp_perm}, path))
    return paths


def _exposure_chunk(items, exposure, out_dir):
    paths = []
    for replicate, seed_seq in items:
        exposure_perm = permute_exposure(exposure, np.random.default_rng(seed_seq))
        path = Path(out_dir) / EXPOSURE_TEMPLATE.format(replicate)
        paths.append(_save_tensors({'exposure': exposure_perm}, path))
    return paths


def create_permuted_datasets(data, out_dir, config=None, n_permutations=None, seed=None,
                             n_jobs=None, chunk_size=None, show_progress=None):
    """
    Write permuted replicates of the observed data to disk.

    Parameters:
    data : GenotypeStore, ExposureAwareMode or array-like
        A store gives case/complement replicates; an exposure mode or
        exposure matrix gives exposure replicates
    out_dir : str or Path
        Directory for the replicate files (created if needed)
    config : AnalysisConfig, optional
        Run settings; ``n_permuted_datasets`` gives the replicate count
    n_permutations : int, optional
        Number of replicates (default 100)
    seed : int, optional
        Seed of the replicate seed sequence
    n_jobs : int, optional
        Number of worker processes (default 1)
    chunk_size : int, optional
        Replicates per worker call (default 500)
    show_progress : bool, optional
        Whether to show a progress bar

    Returns:
    list
        Paths of the replicate files, replicate 1 first
    """
    run = as_analysis_config(config).with_overrides(
        n_permuted_datasets=n_permutations, seed=seed, n_jobs=n_jobs,
        chunk_size=chunk_size, show_progress=show_progress)
    n_permutations = run.n_permuted_datasets
    out_dir = Path(out_dir).expanduser().resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    items = list(zip(range(1, n_permutations + 1), spawn_replicate_seeds(run.seed, n_permutations)))

    if isinstance(data, GenotypeStore):
        logger.info(f"Writing {n_permutations} case/complement permutations to {out_dir}")
        return run_chunks(_genotype_chunk, items, n_jobs=run.n_jobs, chunk_size=run.chunk_size,
                          show_progress=run.show_progress, desc="Permuting genotypes",
                          case=data.case_matrix(), comp=data.complement_matrix(),
                          out_dir=out_dir)

    exposure = data.exposure if isinstance(data, ExposureAwareMode) else torch.as_tensor(np.asarray(data))
    logger.info(f"Writing {n_permutations} exposure permutations to {out_dir}")
    return run_chunks(_exposure_chunk, items, n_jobs=run.n_jobs, chunk_size=run.chunk_size,
                      show_progress=run.show_progress, desc="Permuting exposures",
                      exposure=exposure, out_dir=out_dir)


def _load(path, keys):
    try:
        obj = torch.load(path, weights_only=True)
    except FileNotFoundError as e:
        raise IOFailure("Permutation replicate not found", path) from e
    except (RuntimeError, EOFError, pickle.UnpicklingError, OSError) as e:
        raise IOFailure(f"Corrupt permutation replicate: {e}", path) from e
    if not isinstance(obj, dict) or any(k not in obj for k in keys):
        raise IOFailure(f"Permutation replicate lacks {keys}", path)
    return tuple(obj[k] for k in keys)


def load_permuted_dataset(path):
    """Return the (case, complement) tensors of a genotype replicate."""
    return _load(path, ('case', 'complement'))


def load_permuted_exposure(path):
    """Return the exposure matrix of an exposure replicate."""
    return _load(path, ('exposure',))[0]


def load_permuted_store(store, path):
    """The observed store's metadata over a replicate's genotypes."""
    case, comp = load_permuted_dataset(path)
    return store.with_genotypes(case, comp)
