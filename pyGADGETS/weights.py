"""
Family weights and per-SNP transmission votes for a candidate SNP-set.
"""

from dataclasses import dataclass
from functools import lru_cache

import torch

from .genotype_store import MISSING


@lru_cache(maxsize=64)
def build_weight_lookup(max_index, weight_function_int=2):
    """
    Build the family weight lookup table.

    Parameters:
    max_index : int
        Largest weighted difference index that can occur
    weight_function_int : int, default 2
        Base of the exponential weight

    Returns:
    torch.Tensor
        float64 tensor [base^0, base^1, ..., base^max_index]
    """
    exponents = torch.arange(max_index + 1, dtype=torch.float64)
    return torch.pow(torch.tensor(float(weight_function_int), dtype=torch.float64), exponents)


@dataclass(frozen=True)
class FamilyWeights:
    """
    Per-family quantities for one SNP-set.

    Parameters:
    index : torch.Tensor
        Weighted difference index x for every family (0 for families with
        missing genotypes)
    weights : torch.Tensor
        weight_function_int ** x
    votes : torch.Tensor
        families x SNPs sign(case - complement)
    complete : torch.Tensor
        True where the family has no missing genotype in the set
    informative : torch.Tensor
        complete and x > 0
    """
    index: torch.Tensor
    weights: torch.Tensor
    votes: torch.Tensor
    complete: torch.Tensor
    informative: torch.Tensor


def weighted_difference_index(case_sub, comp_sub, n_different_snps_weight=2, n_both_one_weight=1):
    """
    x = n_different_snps_weight * #(case != complement)
        + n_both_one_weight * #(case == 1 and complement == 1)
    """
    n_different = (case_sub != comp_sub).sum(dim=1)
    n_both_one = ((case_sub == 1) & (comp_sub == 1)).sum(dim=1)
    return n_different_snps_weight * n_different + n_both_one_weight * n_both_one


def family_weights(case_sub, comp_sub, config):
    """
    Compute weights and directional votes for every family.

    Parameters:
    case_sub : torch.Tensor
        families x k case genotypes of the SNP-set
    comp_sub : torch.Tensor
        families x k complement genotypes of the SNP-set
    config : ScoringConfig
        Weighting constants

    Returns:
    FamilyWeights
    """
    case_sub = case_sub.to(torch.int16)
    comp_sub = comp_sub.to(torch.int16)
    complete = ~((case_sub == MISSING) | (comp_sub == MISSING)).any(dim=1)

    x = weighted_difference_index(case_sub, comp_sub,
                                  config.n_different_snps_weight,
                                  config.n_both_one_weight)
    x = torch.where(complete, x, torch.zeros_like(x))

    lookup = build_weight_lookup(config.max_weight_index(case_sub.shape[1]),
                                 config.weight_function_int)
    weights = lookup[x.long()]

    votes = torch.sign(case_sub - comp_sub).to(torch.float64)
    votes[~complete] = 0.0

    return FamilyWeights(index=x, weights=weights, votes=votes,
                         complete=complete, informative=complete & (x > 0))
