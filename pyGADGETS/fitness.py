"""
Fitness scoring of candidate SNP-sets ("chromosomes").

A family's case and complement are compared at every SNP of the set. The
families are weighted exponentially by how much they differ and the weighted
mean transmission direction is standardized per SNP. The fitness combines
that standardized vector with how often the case, rather than the
complement, is the one carrying the whole risk set, so SNPs only score well
together when the same families carry their risk alleles jointly. SNPs whose
risk genotype looks recessive are recoded to require two copies of the risk
allele.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
import torch

from .config import ExposureAwareMode, TransmissionMode, as_analysis_config
from .errors import InsufficientData
from .exposure import exposure_component
from .weights import family_weights

logger = logging.getLogger(__name__)


class RiskRequirement(str, Enum):
    """Risk allele copies a family member needs at a SNP to carry the risk set."""
    AT_LEAST_ONE = '1+'
    EXACTLY_TWO = '2'


@dataclass(frozen=True, eq=False)
class FitnessResult:
    """
    Outcome of scoring one SNP-set.

    Parameters:
    fitness_score : float
        Aggregated fitness
    difference_vector : np.ndarray
        Weighted mean transmission direction per SNP divided by its pseudo
        standard error. Positive means the minor allele is the provisional
        risk allele
    informativeness : np.ndarray
        q per SNP, see ``informativeness``
    risk_requirement : tuple
        RiskRequirement per SNP
    n_informative_families : int
        Families entering the statistics
    case_carrier_prop : float
        Among informative families where exactly one member carries the
        final risk set, the fraction where that member is the case
    informative_family_indices : np.ndarray, optional
        Rows of the informative families, when requested
    exposure_coefficients : np.ndarray, optional
        Exposure-aware mode only; one coefficient per non-reference level
    component_scores : np.ndarray, optional
        Exposure-aware mode only; raw (transmission, exposure) components
        before standardization
    """
    fitness_score: float
    difference_vector: np.ndarray
    informativeness: np.ndarray
    risk_requirement: Tuple[RiskRequirement, ...]
    n_informative_families: int = 0
    case_carrier_prop: float = 0.0
    informative_family_indices: Optional[np.ndarray] = None
    exposure_coefficients: Optional[np.ndarray] = None
    component_scores: Optional[np.ndarray] = None

    @property
    def is_sentinel(self):
        return self.n_informative_families == 0

    def to_record(self, snps):
        """Flatten into one island-file row for the given SNP-set."""
        record = {f"snp{j + 1}": int(s) for j, s in enumerate(snps)}
        record['fitness_score'] = self.fitness_score
        for j in range(len(snps)):
            has_value = j < len(self.difference_vector)
            record[f"diff_vec{j + 1}"] = float(self.difference_vector[j]) if has_value else np.nan
            record[f"q{j + 1}"] = float(self.informativeness[j]) if has_value else np.nan
            record[f"risk{j + 1}"] = self.risk_requirement[j].value if has_value else ''
        record['case_carrier_prop'] = self.case_carrier_prop
        record['n_informative_families'] = self.n_informative_families
        return record


def sentinel_result(return_informative_indices=False):
    """Fitness result for a SNP-set no family is informative for."""
    return FitnessResult(
        fitness_score=0.0,
        difference_vector=np.empty(0),
        informativeness=np.empty(0),
        risk_requirement=(),
        n_informative_families=0,
        informative_family_indices=np.empty(0, dtype=np.int64) if return_informative_indices else None,
    )


def carrier_weighted(diff_vec, case_carrier_prop):
    """
    Squared sum of |d_j| over K, scaled by the case share of risk-set carriers.

    Strong marginal SNPs that are carried by different families get a small
    case share and score low.
    """
    return float(case_carrier_prop * squared_sum(diff_vec, case_carrier_prop))


def squared_sum(diff_vec, case_carrier_prop=None):
    """(sum |d_j|)^2 / K, marginal only."""
    return float(np.abs(diff_vec).sum() ** 2 / len(diff_vec))


def minimum(diff_vec, case_carrier_prop=None):
    """K * min d_j^2: the set is only as good as its weakest SNP."""
    return float(len(diff_vec) * np.min(diff_vec ** 2))


def sum_of_squares(diff_vec, case_carrier_prop=None):
    return float(np.sum(diff_vec ** 2))


FITNESS_AGGREGATORS = {
    'carrier_weighted': carrier_weighted,
    'squared_sum': squared_sum,
    'minimum': minimum,
    'sum_of_squares': sum_of_squares,
}


def resolve_aggregator(aggregation):
    if callable(aggregation):
        return aggregation
    try:
        return FITNESS_AGGREGATORS[aggregation]
    except KeyError:
        raise ValueError(f"Unknown fitness aggregation {aggregation!r}; "
                         f"choose from {sorted(FITNESS_AGGREGATORS)}") from None


def standardized_differences(votes, weights):
    """
    Weighted mean vote per SNP and the mean divided by its pseudo standard error.

    The weighted variance is floored at 1 / n_eff so that SNPs where every
    informative family votes the same way stay finite.

    Parameters:
    votes : torch.Tensor
        informative families x K votes in {-1, 0, 1}
    weights : torch.Tensor
        Family weights

    Returns:
    tuple
        (mean vector, standardized vector) as float64 tensors
    """
    total = weights.sum()
    mean = (weights @ votes) / total
    var = (weights @ (votes - mean) ** 2) / total
    n_eff = total ** 2 / (weights ** 2).sum()
    var = torch.clamp(var, min=float(1.0 / n_eff))
    se = torch.sqrt(var / n_eff)
    return mean, mean / se


def carries_risk(genotypes, minor_is_risk, recessive):
    """
    Per-SNP indicator that a genotype meets the risk requirement.

    At least one risk allele copy unless the SNP is recessive, in which case
    two copies are needed. With the major allele as risk allele a count of 0
    minor alleles means two risk copies.
    """
    at_least_one = torch.where(minor_is_risk, genotypes >= 1, genotypes <= 1)
    return torch.where(recessive, homozygous_risk(genotypes, minor_is_risk), at_least_one)


def homozygous_risk(genotypes, minor_is_risk):
    return torch.where(minor_is_risk, genotypes == 2, genotypes == 0)


def risk_set_carriers(case_inf, comp_inf, minor_is_risk, recessive):
    """Which case and which complement carry the full risk set."""
    case_full = carries_risk(case_inf, minor_is_risk, recessive).all(dim=1)
    comp_full = carries_risk(comp_inf, minor_is_risk, recessive).all(dim=1)
    return case_full, comp_full


def case_carrier_proportion(case_full, comp_full):
    """Fraction of exactly-one-carrier families where the case is the carrier; 0 if none."""
    n_case = int((case_full & ~comp_full).sum())
    n_comp = int((comp_full & ~case_full).sum())
    if n_case + n_comp == 0:
        return 0.0
    return n_case / (n_case + n_comp)


def informativeness(case_inf, comp_inf, minor_is_risk):
    """
    Recessiveness evidence per SNP under the provisional (dominant) risk set.

    Among families where the case carries the full risk set and the
    complement does not, q is the fraction of those carrier cases that are
    homozygous for the risk allele at the SNP.

    Returns:
    tuple
        (q per SNP, NaN when no case is the sole carrier;
         number of sole-carrier cases, broadcast per SNP)
    """
    dominant = torch.zeros_like(minor_is_risk)
    case_full, comp_full = risk_set_carriers(case_inf, comp_inf, minor_is_risk, dominant)
    case_only = (case_full & ~comp_full).unsqueeze(1)

    n1 = (homozygous_risk(case_inf, minor_is_risk) & case_only).sum(dim=0).to(torch.float64)
    n = case_only.sum().to(torch.float64).expand_as(n1)
    q = torch.where(n > 0, n1 / n.clamp(min=1.0), torch.full_like(n1, float('nan')))
    return q, n


def recessive_test_statistic(q, n, recessive_ref_prop):
    ref = recessive_ref_prop
    se = torch.sqrt(ref * (1.0 - ref) / n.clamp(min=1.0))
    stat = (q - ref) / se
    return torch.where(n > 0, stat, torch.full_like(stat, float('nan')))


def recode_recessive(genotypes, minor_is_risk):
    """Two-copy indicator on the minor allele count scale (0 or 2)."""
    hom = homozygous_risk(genotypes, minor_is_risk)
    recoded = torch.where(minor_is_risk, hom, ~hom)
    return recoded.to(torch.int16) * 2


def _votes(case, comp):
    return torch.sign(case - comp).to(torch.float64)


def score_matrices(case_sub, comp_sub, config=None, mode=None,
                   return_informative_indices=False, strict=False):
    """
    Score a SNP-set from its already extracted case/complement columns.

    This is the scorer behind ``score``; the permutation tests call it
    directly on rearranged columns.

    Parameters:
    case_sub : torch.Tensor
        families x K case genotypes
    comp_sub : torch.Tensor
        families x K complement genotypes
    config : ScoringConfig or AnalysisConfig, optional
        Scoring constants
    mode : TransmissionMode or ExposureAwareMode, optional
        Scoring mode; defaults to transmission only
    return_informative_indices : bool, default False
        Whether to return the rows of the informative families
    strict : bool, default False
        Raise InsufficientData instead of returning the sentinel result

    Returns:
    FitnessResult
    """
    config = as_analysis_config(config).scoring
    mode = mode or TransmissionMode()
    aggregate = resolve_aggregator(config.aggregation)

    fw = family_weights(case_sub, comp_sub, config)
    inf_idx = torch.nonzero(fw.informative, as_tuple=True)[0]
    if inf_idx.numel() == 0:
        if strict:
            raise InsufficientData("No family is informative for this SNP-set.")
        return sentinel_result(return_informative_indices)

    weights = fw.weights[inf_idx]
    votes = fw.votes[inf_idx]
    case_inf = case_sub[inf_idx].to(torch.int16)
    comp_inf = comp_sub[inf_idx].to(torch.int16)

    _, diff_vec = standardized_differences(votes, weights)
    minor_is_risk = diff_vec > 0
    q, n_carriers = informativeness(case_inf, comp_inf, minor_is_risk)
    recessive = torch.zeros_like(minor_is_risk)

    exposure_coefs = None
    components = None
    if isinstance(mode, ExposureAwareMode):
        case_full, comp_full = risk_set_carriers(case_inf, comp_inf, minor_is_risk, recessive)
        carrier_prop = case_carrier_proportion(case_full, comp_full)
        transmission = aggregate(diff_vec.numpy(), carrier_prop)
        one_carrier = case_full ^ comp_full
        y = case_full[one_carrier].to(torch.float64)
        X = mode.exposure[inf_idx][one_carrier]
        exposure_stat, exposure_coefs = exposure_component(y, X)
        components = np.array([transmission, exposure_stat])
        fitness = float(mode.calibration.standardize(components).sum())
    else:
        stat = recessive_test_statistic(q, n_carriers, config.recessive_ref_prop)
        # NaN statistics (no sole-carrier cases) never recode
        recessive = stat > config.recode_test_stat
        if bool(recessive.any()):
            cols = torch.nonzero(recessive, as_tuple=True)[0]
            case_rec = recode_recessive(case_inf[:, cols], minor_is_risk[cols])
            comp_rec = recode_recessive(comp_inf[:, cols], minor_is_risk[cols])
            votes = votes.clone()
            votes[:, cols] = _votes(case_rec, comp_rec)
            _, diff_vec = standardized_differences(votes, weights)
        case_full, comp_full = risk_set_carriers(case_inf, comp_inf, minor_is_risk, recessive)
        carrier_prop = case_carrier_proportion(case_full, comp_full)
        fitness = aggregate(diff_vec.numpy(), carrier_prop)

    risk_requirement = tuple(
        RiskRequirement.EXACTLY_TWO if r else RiskRequirement.AT_LEAST_ONE
        for r in recessive.tolist()
    )

    return FitnessResult(
        fitness_score=float(fitness),
        difference_vector=diff_vec.numpy(),
        informativeness=q.numpy(),
        risk_requirement=risk_requirement,
        n_informative_families=int(inf_idx.numel()),
        case_carrier_prop=carrier_prop,
        informative_family_indices=inf_idx.numpy() if return_informative_indices else None,
        exposure_coefficients=exposure_coefs,
        component_scores=components,
    )


def score(candidate, store, config=None, mode=None,
          return_informative_indices=False, strict=False):
    """
    Score a candidate SNP-set against the families in a genotype store.

    Parameters:
    candidate : sequence of int
        Column indices of the SNP-set; order is kept in the output vectors
    store : GenotypeStore
        Case/complement genotypes
    config : ScoringConfig or AnalysisConfig, optional
        Scoring constants
    mode : TransmissionMode or ExposureAwareMode, optional
        Scoring mode; defaults to transmission only
    return_informative_indices : bool, default False
        Whether to return the rows of the informative families
    strict : bool, default False
        Raise InsufficientData instead of returning the sentinel result

    Returns:
    FitnessResult

    Raises:
    InvalidCandidateSet
        If the indices are out of range, duplicated or not integers
    """
    if isinstance(mode, ExposureAwareMode) and mode.exposure.shape[0] != store.n_families:
        raise ValueError(f"Exposure has {mode.exposure.shape[0]} rows but the store "
                         f"has {store.n_families} families.")
    case_sub, comp_sub = store.columns(candidate)
    return score_matrices(case_sub, comp_sub, config=config, mode=mode,
                          return_informative_indices=return_informative_indices,
                          strict=strict)
