import numpy as np
import pytest

from pyGADGETS import GenotypeStore, simulate_trios


@pytest.fixture
def small_store():
    """Six families, four SNPs in two LD blocks, one family with a missing call."""
    case = np.array([
        [2, 1, 1, 0],
        [1, 1, 2, 1],
        [1, 0, 1, 1],
        [2, 2, 0, 1],
        [1, 1, 1, -9],
        [0, 1, 2, 2],
    ])
    comp = np.array([
        [0, 1, 0, 0],
        [0, 1, 1, 0],
        [1, 0, 0, 1],
        [1, 0, 0, 0],
        [0, 0, 0, 0],
        [1, 1, 1, 1],
    ])
    return GenotypeStore(case, comp, ld_block_vec=[2, 4])


@pytest.fixture
def recessive_store():
    """
    30 cases homozygous for the minor allele at both SNPs and 2 heterozygous
    cases, every complement without a minor allele.
    """
    case = np.vstack([np.full((30, 2), 2), np.full((2, 2), 1)])
    comp = np.zeros((32, 2), dtype=np.int64)
    return GenotypeStore(case, comp)


@pytest.fixture(scope="session")
def causal_trios():
    return simulate_trios(n_families=1000, n_snps=10, risk_snps=(2, 5, 8),
                          risk_allele_effect=6.0, ld_block_vec=[3, 6, 10], seed=1400)
