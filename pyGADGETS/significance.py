"""
Permutation tests for SNP-sets and the global test across chromosome sizes.

A note on interpretation: when the tested SNP-set was picked by searching the
same data (the usual case, e.g. the top chromosome of a GA run), the value
returned by the SNP-set tests is not a valid p-value. It is an "h-value":
useful for ranking and follow-up, but not uniform under the null. Only a
SNP-set chosen independently of the tested data yields a p-value.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import torch
from scipy.stats import rankdata

from .config import ExposureAwareMode, as_analysis_config
from .errors import PolicyViolationWarning
from .fitness import FitnessResult, score, score_matrices
from .genotype_store import MATERNAL
from .permutation import permute_exposure, spawn_replicate_seeds
from .utils import run_chunks

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PermutationTestResult:
    """
    Parameters:
    observed : float or None
        Fitness of the observed SNP-set; None when the test was not
        applicable
    permuted : np.ndarray
        Fitness of every permuted replicate
    pval : float or None
        Fraction of permuted scores at least as large as the observed one
        (an h-value for data-selected SNP-sets); None when not applicable
    applicable : bool
        Whether the test could be run
    reason : str
        Why the test was not applicable
    observed_result : FitnessResult, optional
        Full observed result
    """
    observed: Optional[float]
    permuted: np.ndarray = field(default_factory=lambda: np.empty(0))
    pval: Optional[float] = None
    applicable: bool = True
    reason: str = ''
    observed_result: Optional[FitnessResult] = None


@dataclass(frozen=True, eq=False)
class GlobalTestResult:
    """
    Parameters:
    pval : float
        Global p-value over all chromosome sizes
    thresholds : dict
        Per chromosome size, the 95th percentile (by default) of the maximum
        permuted fitness score per replicate
    observed_statistic : float
        Combined rank statistic of the observed data
    permuted_statistics : np.ndarray
        The same statistic per replicate
    """
    pval: float
    thresholds: Dict[int, float]
    observed_statistic: float
    permuted_statistics: np.ndarray


def _not_applicable(reason, policy=True):
    logger.warning(reason)
    if policy:
        warnings.warn(reason, PolicyViolationWarning, stacklevel=3)
    return PermutationTestResult(observed=None, applicable=False, reason=reason)


def _upper_tail(observed, permuted):
    return float(np.mean(permuted >= observed)) if permuted.size else float('nan')


def _row_permutation_chunk(seed_chunk, case_inf, comp_inf, groups, config):
    # the first group stays in place; the others are reassigned to other families
    out = []
    n_families = case_inf.shape[0]
    for seed_seq in seed_chunk:
        rng = np.random.default_rng(seed_seq)
        case_perm = case_inf.clone()
        comp_perm = comp_inf.clone()
        for cols in groups[1:]:
            order = torch.from_numpy(rng.permutation(n_families))
            case_perm[:, cols] = case_inf[order][:, cols]
            comp_perm[:, cols] = comp_inf[order][:, cols]
        out.append(score_matrices(case_perm, comp_perm, config).fitness_score)
    return out


def _row_permutation_test(snps, store, run, groups, desc):
    case_sub, comp_sub = store.columns(snps)
    observed = score_matrices(case_sub, comp_sub, run.scoring, return_informative_indices=True)
    if observed.is_sentinel:
        return _not_applicable(f"No informative families for SNP-set {tuple(snps)}.", policy=False)

    inf = torch.as_tensor(observed.informative_family_indices)
    permuted = run_chunks(
        _row_permutation_chunk,
        spawn_replicate_seeds(run.seed, run.n_permutations),
        n_jobs=run.n_jobs,
        chunk_size=run.chunk_size,
        show_progress=run.show_progress,
        desc=desc,
        case_inf=case_sub[inf],
        comp_inf=comp_sub[inf],
        groups=[torch.as_tensor(g, dtype=torch.long) for g in groups],
        config=run.scoring,
    )
    permuted = np.asarray(permuted, dtype=np.float64)
    return PermutationTestResult(
        observed=observed.fitness_score,
        permuted=permuted,
        pval=_upper_tail(observed.fitness_score, permuted),
        observed_result=observed,
    )


def _positions_by_block(blocks):
    groups = {}
    for pos, block in enumerate(blocks.tolist()):
        groups.setdefault(block, []).append(pos)
    return list(groups.values())


def _run_settings(config, n_permutations, seed, n_jobs, chunk_size, show_progress):
    return as_analysis_config(config).with_overrides(
        n_permutations=n_permutations, seed=seed, n_jobs=n_jobs,
        chunk_size=chunk_size, show_progress=show_progress)


def epistasis_test(snps, store, config=None, n_permutations=None, seed=None,
                   n_jobs=None, chunk_size=None, show_progress=None):
    """
    Test whether the SNPs of a set act jointly beyond their marginal effects.

    Within the informative families, the rows of each LD block's SNPs are
    reassigned to other families independently of the other blocks. This
    keeps every block's own transmission signal and destroys the joint one.

    Parameters:
    snps : sequence of int
        SNP-set to test
    store : GenotypeStore
        Observed genotypes
    config : ScoringConfig or AnalysisConfig, optional
        Scoring constants, plus run settings when an AnalysisConfig
    n_permutations : int, optional
        Number of permuted replicates (AnalysisConfig default 10000)
    seed : int, optional
        Seed of the replicate seed sequence
    n_jobs : int, optional
        Number of worker processes (default 1)
    chunk_size : int, optional
        Replicates per worker call (default 500)
    show_progress : bool, optional
        Whether to show a progress bar

    Returns:
    PermutationTestResult
        Not applicable (with a PolicyViolationWarning) when the whole set
        lies in one LD block
    """
    run = _run_settings(config, n_permutations, seed, n_jobs, chunk_size, show_progress)
    snps = store.validate_snp_set(snps)
    groups = _positions_by_block(store.snp_blocks(snps))
    if len(groups) < 2:
        return _not_applicable(f"All SNPs of {snps} are in one LD block; "
                               f"the epistasis test is not applicable.")
    return _row_permutation_test(snps, store, run, groups, "Epistasis test")


def maternal_fetal_test(snps, store, config=None, n_permutations=None, seed=None,
                        n_jobs=None, chunk_size=None, show_progress=None):
    """
    Test for a joint maternal x child effect.

    Applies only to SNP-sets mixing maternal and child SNPs where no maternal
    SNP shares an LD block with a child SNP. Within the informative families
    the maternal rows are re-paired with other families' child rows, which
    removes the joint maternal x child signal but keeps any purely maternal or
    purely child signal. Arguments are those of ``epistasis_test``.

    Returns:
    PermutationTestResult
        Not applicable (with a PolicyViolationWarning, no score computed)
        when the preconditions fail
    """
    run = _run_settings(config, n_permutations, seed, n_jobs, chunk_size, show_progress)
    snps = store.validate_snp_set(snps)
    roles = store.snp_roles(snps)
    blocks = store.snp_blocks(snps)
    maternal = [i for i, r in enumerate(roles) if r == MATERNAL]
    child = [i for i, r in enumerate(roles) if r != MATERNAL]
    if not maternal or not child:
        return _not_applicable(f"SNP-set {snps} does not mix maternal and child SNPs; "
                               f"the maternal-fetal test is not applicable.")
    shared = sorted(set(blocks[maternal].tolist()) & set(blocks[child].tolist()))
    if shared:
        return _not_applicable(f"Maternal and child SNPs of {snps} share LD block(s) {shared}; "
                               f"the maternal-fetal test is not applicable.")
    return _row_permutation_test(snps, store, run, [child, maternal], "Maternal-fetal test")


def _exposure_permutation_chunk(seed_chunk, case_inf, comp_inf, inf, mode, config):
    out = []
    for seed_seq in seed_chunk:
        exposure = permute_exposure(mode.exposure, np.random.default_rng(seed_seq))[inf]
        result = score_matrices(case_inf, comp_inf, config, mode.with_exposure(exposure))
        out.append(result.fitness_score)
    return out


def gxe_test(snps, store, mode, config=None, n_permutations=None, seed=None,
             n_jobs=None, chunk_size=None, show_progress=None):
    """
    Test a SNP-set for interaction with the exposure.

    Exposure rows are shuffled across all families and the set is re-scored
    in exposure-aware mode; genotypes are held fixed.

    Parameters:
    snps : sequence of int
        SNP-set to test
    store : GenotypeStore
        Observed genotypes
    mode : ExposureAwareMode
        Exposure data and null calibration
    config : ScoringConfig or AnalysisConfig, optional
        Scoring constants, plus run settings when an AnalysisConfig

    Returns:
    PermutationTestResult
    """
    if not isinstance(mode, ExposureAwareMode):
        raise TypeError("gxe_test needs an ExposureAwareMode.")
    run = _run_settings(config, n_permutations, seed, n_jobs, chunk_size, show_progress)
    snps = store.validate_snp_set(snps)
    observed = score(snps, store, run.scoring, mode, return_informative_indices=True)
    if observed.is_sentinel:
        return _not_applicable(f"No informative families for SNP-set {snps}.", policy=False)

    inf = torch.as_tensor(observed.informative_family_indices)
    case_sub, comp_sub = store.columns(snps)
    permuted = run_chunks(
        _exposure_permutation_chunk,
        spawn_replicate_seeds(run.seed, run.n_permutations),
        n_jobs=run.n_jobs,
        chunk_size=run.chunk_size,
        show_progress=run.show_progress,
        desc="GxE test",
        case_inf=case_sub[inf],
        comp_inf=comp_sub[inf],
        inf=inf,
        mode=mode,
        config=run.scoring,
    )
    permuted = np.asarray(permuted, dtype=np.float64)
    return PermutationTestResult(
        observed=observed.fitness_score,
        permuted=permuted,
        pval=_upper_tail(observed.fitness_score, permuted),
        observed_result=observed,
    )


def global_test(observed_scores, permuted_scores, threshold_quantile=0.95):
    """
    Global test of the top fitness scores across chromosome sizes.

    For each chromosome size, every replicate's top-K scores are compared
    with the observed top-K by ranking each order position (best, second
    best, ...) across observed and replicates. The summed ranks are
    standardized within the size, and the maximum over sizes is the global
    statistic.

    Parameters:
    observed_scores : dict
        Chromosome size -> the K top fitness scores of the observed data
    permuted_scores : dict
        Chromosome size -> (n_replicates x K) top fitness scores, one row per
        permuted dataset
    threshold_quantile : float, default 0.95
        Quantile of the per-replicate maximum used as significance threshold

    Returns:
    GlobalTestResult
    """
    sizes = sorted(observed_scores)
    if not sizes:
        raise ValueError("No chromosome sizes given.")
    if set(sizes) != set(permuted_scores):
        raise ValueError("observed_scores and permuted_scores must cover the same chromosome sizes.")

    n_reps = None
    thresholds = {}
    standardized = []
    for size in sizes:
        obs = -np.sort(-np.asarray(observed_scores[size], dtype=np.float64).ravel())
        perm = np.asarray(permuted_scores[size], dtype=np.float64)
        if perm.ndim != 2 or perm.shape[1] != obs.size:
            raise ValueError(f"Chromosome size {size}: permuted scores must be an "
                             f"(n_replicates x {obs.size}) matrix.")
        if n_reps is None:
            n_reps = perm.shape[0]
        elif perm.shape[0] != n_reps:
            raise ValueError("Every chromosome size needs the same number of replicates.")
        if n_reps < 1:
            raise ValueError("At least one permuted replicate is needed.")
        perm = -np.sort(-perm, axis=1)

        thresholds[size] = float(np.quantile(perm[:, 0], threshold_quantile))

        ranks = rankdata(np.vstack([obs, perm]), axis=0)
        row_stat = ranks.sum(axis=1)
        sd = row_stat.std()
        centred = row_stat - row_stat.mean()
        standardized.append(centred / sd if sd > 0 else np.zeros_like(centred))

    combined = np.column_stack(standardized).max(axis=1)
    observed_stat = float(combined[0])
    permuted_stats = combined[1:]
    pval = float((1 + np.sum(permuted_stats >= observed_stat)) / (n_reps + 1))
    logger.info(f"Global test p-value {pval:.4g} over chromosome sizes {sizes}")
    return GlobalTestResult(pval=pval, thresholds=thresholds,
                            observed_statistic=observed_stat,
                            permuted_statistics=permuted_stats)
