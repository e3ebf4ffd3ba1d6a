"""
Synthetic case-parent trios with a multi-SNP risk effect.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .genotype_store import GenotypeStore

logger = logging.getLogger(__name__)


@dataclass
class SimulatedTrios:
    store: GenotypeStore
    case: np.ndarray
    mother: np.ndarray
    father: np.ndarray
    exposure: Optional[np.ndarray] = None


def transmit(parent, rng):
    """One allele per parent: the minor allele with probability genotype / 2."""
    return rng.binomial(1, parent / 2.0)


def carries_risk_set(child, risk_snps):
    if len(risk_snps) == 0:
        return np.zeros(child.shape[0], dtype=bool)
    return np.all(child[:, list(risk_snps)] >= 1, axis=1)


def simulate_trios(n_families=1000, n_snps=10, risk_snps=(), risk_allele_effect=3.0,
                   maf=0.25, ld_block_vec=None, mother_snps=None,
                   exposure_prevalence=None, batch_size=5000, seed=None):
    """
    Simulate affected children with their parents.

    Parents are drawn under Hardy-Weinberg equilibrium and each passes one
    allele by Mendelian transmission. Children carrying at least one minor
    allele at every risk SNP are ``risk_allele_effect`` times as likely to be
    affected; affected children are kept by rejection sampling.

    Parameters:
    n_families : int, default 1000
        Number of trios
    n_snps : int, default 10
        Number of SNPs
    risk_snps : sequence of int
        Columns forming the causal risk set
    risk_allele_effect : float, default 3.0
        Relative risk of carrying the full risk set
    maf : float or sequence, default 0.25
        Minor allele frequency per SNP
    ld_block_vec : sequence of int, optional
        Passed on to the GenotypeStore
    mother_snps : sequence of int, optional
        Passed on to the GenotypeStore
    exposure_prevalence : float, optional
        If given, families get a binary exposure and the risk effect only
        acts in exposed families
    batch_size : int, default 5000
        Trios proposed per rejection round
    seed : int, optional
        Random seed

    Returns:
    SimulatedTrios
    """
    if risk_allele_effect < 1:
        raise ValueError("risk_allele_effect must be at least 1.")
    rng = np.random.default_rng(seed)
    maf = np.broadcast_to(np.asarray(maf, dtype=np.float64), (n_snps,))

    kept = {'case': [], 'mother': [], 'father': [], 'exposure': []}
    n_kept = 0
    while n_kept < n_families:
        mother = rng.binomial(2, maf, size=(batch_size, n_snps))
        father = rng.binomial(2, maf, size=(batch_size, n_snps))
        child = transmit(mother, rng) + transmit(father, rng)

        at_risk = carries_risk_set(child, risk_snps)
        if exposure_prevalence is not None:
            exposed = rng.random(batch_size) < exposure_prevalence
            at_risk = at_risk & exposed
        else:
            exposed = np.zeros(batch_size, dtype=bool)

        accept_prob = np.where(at_risk, 1.0, 1.0 / risk_allele_effect)
        accepted = rng.random(batch_size) < accept_prob
        kept['case'].append(child[accepted])
        kept['mother'].append(mother[accepted])
        kept['father'].append(father[accepted])
        kept['exposure'].append(exposed[accepted])
        n_kept += int(accepted.sum())

    case, mother, father, exposure = (np.concatenate(kept[k])[:n_families]
                                      for k in ('case', 'mother', 'father', 'exposure'))
    store = GenotypeStore.from_trios(case, mother, father,
                                     ld_block_vec=ld_block_vec, mother_snps=mother_snps)
    logger.info(f"Simulated {n_families} trios over {n_snps} SNPs, risk set {tuple(risk_snps)}")
    return SimulatedTrios(store=store, case=case, mother=mother, father=father,
                          exposure=exposure.astype(np.int64) if exposure_prevalence is not None else None)
