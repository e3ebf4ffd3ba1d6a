"""
Read-only view over the case and complement genotype matrices of an analysis.
"""

import logging
import operator

import numpy as np
import pandas as pd
import torch

from .errors import InvalidCandidateSet
from .utils import get_snp_mappings

logger = logging.getLogger(__name__)

MISSING = -9

CHILD = 'child'
MATERNAL = 'maternal'


def _as_numpy(values):
    if isinstance(values, torch.Tensor):
        return values.detach().cpu().numpy()
    if isinstance(values, (pd.DataFrame, pd.Series)):
        return values.to_numpy(dtype=np.float64, na_value=np.nan)
    arr = np.asarray(values)
    if arr.dtype == object:
        arr = pd.DataFrame(arr).astype(np.float64).to_numpy()
    return arr


def normalize_missing(values):
    """
    Map genotypes to {0, 1, 2, MISSING} as an int8 tensor.

    NaN, None, 9, negative codes and anything else outside {0, 1, 2}
    (e.g. a Mendelian-inconsistent complement) become MISSING.
    """
    arr = _as_numpy(values)
    if arr.dtype.kind == 'f':
        arr = np.where(np.isfinite(arr), arr, MISSING)
    arr = arr.astype(np.int16)
    arr[(arr < 0) | (arr > 2)] = MISSING
    return torch.from_numpy(arr.astype(np.int8))


def _read_columns(backing, idx):
    # fancy indexing on a memmap only touches the requested columns
    return normalize_missing(backing[:, list(idx)])


def _as_backing(values):
    if isinstance(values, (torch.Tensor, np.ndarray)):
        return values
    if isinstance(values, (pd.DataFrame, pd.Series)):
        return values.to_numpy(dtype=np.float64, na_value=np.nan)
    return _as_numpy(values)


def block_ids_from_bounds(ld_block_vec, n_snps):
    """
    Convert cumulative LD block upper bounds into a block id per column.

    ``[25, 75, 100]`` puts columns 0-24 in block 0, 25-74 in block 1 and
    75-99 in block 2.
    """
    bounds = np.asarray(ld_block_vec, dtype=np.int64)
    if bounds.ndim != 1 or bounds.size == 0:
        raise ValueError("ld_block_vec must be a non-empty vector of block upper bounds.")
    if bounds[0] <= 0 or np.any(np.diff(bounds) <= 0):
        raise ValueError("ld_block_vec must be positive and strictly increasing.")
    if bounds[-1] != n_snps:
        raise ValueError(f"The last LD block bound ({bounds[-1]}) must equal the "
                         f"number of SNP columns ({n_snps}).")
    return np.searchsorted(bounds, np.arange(n_snps), side='right')


class GenotypeStore:
    """
    Case/complement genotype matrices with per-column LD block and role.

    Rows are families and columns are SNPs. For child SNPs the complement is
    the untransmitted genotype (mother + father - case) or an unaffected
    sibling; for maternal SNPs the case column holds the maternal genotype and
    the complement column the paternal one.

    The matrices may be numpy arrays, numpy memmaps or torch tensors; the
    store never copies them and reads only the columns a caller asks for.
    """
    def __init__(self, case, complement, ld_block_vec=None, mother_snps=None, snp_names=None):
        """
        Initialize a genotype store.

        Parameters:
        case : array-like
            families x SNPs genotypes of the affected children (or mothers,
            for maternal SNP columns)
        complement : array-like
            families x SNPs complement genotypes, aligned with ``case``
        ld_block_vec : sequence of int, optional
            Cumulative upper bounds of the LD blocks; the columns must be
            sorted by block. Defaults to a single block
        mother_snps : sequence of int, optional
            Column indices holding maternal genotypes
        snp_names : sequence of str, optional
            Column names, used for lookups and annotation
        """
        self._case = _as_backing(case)
        self._complement = _as_backing(complement)
        if tuple(self._case.shape) != tuple(self._complement.shape):
            raise ValueError(f"Case {tuple(self._case.shape)} and complement "
                             f"{tuple(self._complement.shape)} matrices must have the same shape.")
        if len(self._case.shape) != 2:
            raise ValueError("Genotype matrices must be two dimensional (families x SNPs).")

        self.n_families, self.n_snps = (int(d) for d in self._case.shape)

        if ld_block_vec is None:
            ld_block_vec = [self.n_snps]
        self.ld_block_vec = tuple(int(b) for b in ld_block_vec)
        self.block_ids = block_ids_from_bounds(self.ld_block_vec, self.n_snps)
        self.block_ids.setflags(write=False)

        roles = np.full(self.n_snps, CHILD, dtype=object)
        if mother_snps is not None and len(mother_snps) > 0:
            mother_snps = np.asarray(mother_snps, dtype=np.int64)
            if mother_snps.min() < 0 or mother_snps.max() >= self.n_snps:
                raise ValueError("mother_snps contains column indices outside the data.")
            roles[mother_snps] = MATERNAL
        roles.setflags(write=False)
        self.roles = roles

        if snp_names is None:
            snp_names = [f"snp{j + 1}" for j in range(self.n_snps)]
        snp_names = [str(s) for s in snp_names]
        if len(snp_names) != self.n_snps:
            raise ValueError("One SNP name is needed per genotype column.")
        self.snp_names = tuple(snp_names)

    @classmethod
    def from_trios(cls, case, mother, father, ld_block_vec=None, mother_snps=None, snp_names=None):
        """
        Build a store from case-parent trios.

        The complement of a child SNP is mother + father - case; it is
        missing when any trio member is missing or the trio is
        Mendelian-inconsistent. Maternal SNP columns take the mother's
        genotype as case and the father's as complement.
        """
        case_t = normalize_missing(case).to(torch.int16)
        mother_t = normalize_missing(mother).to(torch.int16)
        father_t = normalize_missing(father).to(torch.int16)
        if not (case_t.shape == mother_t.shape == father_t.shape):
            raise ValueError("Case, mother and father matrices must have the same shape.")

        missing = (case_t == MISSING) | (mother_t == MISSING) | (father_t == MISSING)
        complement = mother_t + father_t - case_t
        complement[missing | (complement < 0) | (complement > 2)] = MISSING
        case_out = case_t.clone()

        if mother_snps is not None and len(mother_snps) > 0:
            cols = torch.as_tensor(np.asarray(mother_snps, dtype=np.int64))
            case_out[:, cols] = mother_t[:, cols]
            complement[:, cols] = father_t[:, cols]

        n_bad = int((complement == MISSING).sum() - (case_out == MISSING).sum())
        if n_bad > 0:
            logger.info(f"{n_bad} complement genotypes set to missing (missing parent or Mendelian error)")

        return cls(case_out.to(torch.int8), complement.to(torch.int8),
                   ld_block_vec=ld_block_vec, mother_snps=mother_snps, snp_names=snp_names)

    @classmethod
    def from_siblings(cls, case, sibling, ld_block_vec=None, snp_names=None):
        """Build a store from disease-discordant sibling pairs."""
        return cls(normalize_missing(case), normalize_missing(sibling),
                   ld_block_vec=ld_block_vec, snp_names=snp_names)

    def with_genotypes(self, case, complement):
        """Return a store with the same metadata over different matrices."""
        mother_snps = np.flatnonzero(self.roles == MATERNAL)
        return GenotypeStore(case, complement, ld_block_vec=self.ld_block_vec,
                             mother_snps=mother_snps, snp_names=self.snp_names)

    def validate_snp_set(self, snps):
        """Return the SNP-set as a tuple of ints or raise InvalidCandidateSet."""
        try:
            idx = tuple(operator.index(s) for s in snps)
        except TypeError as e:
            raise InvalidCandidateSet(f"SNP indices must be integers: {snps!r}") from e
        if len(idx) == 0:
            raise InvalidCandidateSet("The candidate SNP-set is empty.")
        if len(set(idx)) != len(idx):
            raise InvalidCandidateSet(f"Duplicated SNP indices in candidate set {idx}.")
        bad = [s for s in idx if s < 0 or s >= self.n_snps]
        if bad:
            raise InvalidCandidateSet(f"SNP indices {bad} are outside 0..{self.n_snps - 1}.")
        return idx

    def columns(self, snps):
        """
        Case and complement genotypes for the given columns.

        Returns:
        tuple
            (case, complement) int8 tensors of shape families x len(snps)
        """
        idx = self.validate_snp_set(snps)
        return _read_columns(self._case, idx), _read_columns(self._complement, idx)

    def case_matrix(self):
        return normalize_missing(self._case)

    def complement_matrix(self):
        return normalize_missing(self._complement)

    def snp_blocks(self, snps):
        return self.block_ids[list(snps)]

    def snp_roles(self, snps):
        return self.roles[list(snps)]

    def get_snp_mappings(self):
        return get_snp_mappings(self.snp_names)

    def __repr__(self):
        n_maternal = int((self.roles == MATERNAL).sum())
        return (f"GenotypeStore(families={self.n_families}, "
                f"snps={self.n_snps}, "
                f"ld_blocks={len(self.ld_block_vec)}, "
                f"maternal_snps={n_maternal})")
