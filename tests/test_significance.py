import numpy as np
import pytest

from pyGADGETS import (
    ExposureAwareMode,
    GenotypeStore,
    PolicyViolationWarning,
    epistasis_test,
    global_test,
    gxe_test,
    maternal_fetal_test,
    score,
    simulate_trios,
)


def test_epistasis_test_returns_h_value(causal_trios):
    result = epistasis_test([2, 5, 8], causal_trios.store, n_permutations=50, seed=3)
    assert result.applicable
    assert result.permuted.shape == (50,)
    assert result.observed == pytest.approx(score([2, 5, 8], causal_trios.store).fitness_score)
    assert result.pval == pytest.approx(np.mean(result.permuted >= result.observed))
    assert 0.0 <= result.pval <= 1.0


def test_epistasis_test_reproducible_across_chunking(causal_trios):
    a = epistasis_test([1, 4], causal_trios.store, n_permutations=30, seed=8)
    b = epistasis_test([1, 4], causal_trios.store, n_permutations=30, seed=8, chunk_size=4)
    np.testing.assert_array_equal(a.permuted, b.permuted)
    assert a.pval == b.pval


def _independent_marginal_store(seed):
    # SNP 2 and SNP 5 each carry their own effect, drawn in unrelated families
    a = simulate_trios(n_families=1000, n_snps=10, risk_snps=(2,), risk_allele_effect=6.0, seed=seed)
    b = simulate_trios(n_families=1000, n_snps=10, risk_snps=(5,), risk_allele_effect=6.0,
                       seed=seed + 1000)

    def stitch(x, y):
        return np.hstack([x[:, :3], y[:, 3:]])

    return GenotypeStore.from_trios(stitch(a.case, b.case), stitch(a.mother, b.mother),
                                    stitch(a.father, b.father), ld_block_vec=[3, 6, 10])


def test_epistasis_test_detects_joint_effect_across_blocks():
    for seed in range(3):
        sim = simulate_trios(n_families=1000, n_snps=10, risk_snps=(2, 5), risk_allele_effect=8.0,
                             ld_block_vec=[3, 6, 10], seed=40 + seed)
        result = epistasis_test([2, 5], sim.store, n_permutations=100, seed=seed)
        assert result.pval < 0.05
        assert result.observed > np.median(result.permuted)


def test_epistasis_test_quiet_for_independent_marginal_effects():
    small = 0
    for seed in range(3):
        store = _independent_marginal_store(60 + seed)
        marginal = score([2, 5], store)
        assert np.all(marginal.difference_vector > 0)
        result = epistasis_test([2, 5], store, n_permutations=100, seed=seed)
        small += result.pval <= 0.05
    assert small <= 1


def test_epistasis_test_single_block_not_applicable(causal_trios):
    with pytest.warns(PolicyViolationWarning):
        result = epistasis_test([0, 1, 2], causal_trios.store, n_permutations=10, seed=1)
    assert not result.applicable
    assert result.pval is None
    assert result.observed is None


def _maternal_store(ld_block_vec):
    sim = simulate_trios(n_families=300, n_snps=6, risk_snps=(0, 4), risk_allele_effect=4.0,
                         seed=21)
    return GenotypeStore.from_trios(sim.case, sim.mother, sim.father,
                                    ld_block_vec=ld_block_vec, mother_snps=[0, 1, 2])


def test_maternal_fetal_same_block_not_applicable():
    store = _maternal_store([6])
    with pytest.warns(PolicyViolationWarning):
        result = maternal_fetal_test([0, 4], store, n_permutations=10, seed=1)
    assert not result.applicable
    assert result.pval is None
    assert result.observed is None
    assert result.permuted.size == 0


def test_maternal_fetal_needs_both_roles():
    store = _maternal_store([3, 6])
    with pytest.warns(PolicyViolationWarning):
        result = maternal_fetal_test([3, 4], store, n_permutations=10, seed=1)
    assert not result.applicable


def test_maternal_fetal_runs_on_valid_set():
    store = _maternal_store([3, 6])
    result = maternal_fetal_test([0, 4], store, n_permutations=20, seed=2)
    assert result.applicable
    assert result.permuted.shape == (20,)
    assert 0.0 <= result.pval <= 1.0


def test_maternal_fetal_permutation_keeps_separate_signals():
    # mothers and children each over-carry the minor allele, independently
    rng = np.random.default_rng(33)
    n = 1000
    case = np.column_stack([rng.binomial(2, 0.45, n), rng.binomial(2, 0.45, n)])
    comp = np.column_stack([rng.binomial(2, 0.2, n), rng.binomial(2, 0.2, n)])
    store = GenotypeStore(case, comp, ld_block_vec=[1, 2], mother_snps=[0])
    result = maternal_fetal_test([0, 1], store, n_permutations=50, seed=4)
    assert result.applicable
    assert result.observed > 0
    assert np.mean(result.permuted) == pytest.approx(result.observed, rel=0.2)
    assert result.permuted.min() > 0.5 * result.observed


def test_gxe_test():
    sim = simulate_trios(n_families=800, n_snps=6, risk_snps=(1, 4), risk_allele_effect=8.0,
                         exposure_prevalence=0.5, seed=12)
    mode = ExposureAwareMode(exposure=sim.exposure)
    result = gxe_test([1, 4], sim.store, mode, n_permutations=40, seed=5)
    assert result.applicable
    assert result.permuted.shape == (40,)
    assert result.pval <= 0.1


def test_gxe_test_needs_exposure_mode(causal_trios):
    with pytest.raises(TypeError):
        gxe_test([1, 4], causal_trios.store, mode=None, n_permutations=5)


def _global_inputs(seed, shift=0.0):
    rng = np.random.default_rng(seed)
    observed = {2: rng.normal(size=5) + shift, 3: rng.normal(size=5) + shift}
    permuted = {2: rng.normal(size=(99, 5)), 3: rng.normal(size=(99, 5))}
    return observed, permuted


def test_global_test_reproducible():
    a = global_test(*_global_inputs(1))
    b = global_test(*_global_inputs(1))
    assert a.pval == b.pval
    assert a.thresholds == b.thresholds
    np.testing.assert_array_equal(a.permuted_statistics, b.permuted_statistics)


def test_global_test_thresholds_are_max_quantiles():
    observed, permuted = _global_inputs(2)
    result = global_test(observed, permuted)
    for size in (2, 3):
        assert result.thresholds[size] == pytest.approx(np.quantile(permuted[size].max(axis=1), 0.95))


def test_global_test_detects_shifted_scores():
    result = global_test(*_global_inputs(3, shift=10.0))
    assert result.pval == pytest.approx(1 / 100)
    assert 0.0 < global_test(*_global_inputs(3)).pval <= 1.0


def test_global_test_input_validation():
    observed, permuted = _global_inputs(4)
    with pytest.raises(ValueError):
        global_test(observed, {2: permuted[2]})
    with pytest.raises(ValueError):
        global_test(observed, {2: permuted[2], 3: permuted[3][:, :4]})
    with pytest.raises(ValueError):
        global_test(observed, {2: permuted[2], 3: permuted[3][:50]})
