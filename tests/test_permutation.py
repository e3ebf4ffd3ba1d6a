import numpy as np
import pytest
import torch

from pyGADGETS import (
    ExposureAwareMode,
    IOFailure,
    MISSING,
    create_permuted_datasets,
    load_permuted_dataset,
    load_permuted_exposure,
    load_permuted_store,
)
from pyGADGETS.permutation import permute_case_complement, permute_exposure, spawn_replicate_seeds


def test_label_permutation_preserves_family_sums(small_store):
    case, comp = small_store.case_matrix(), small_store.complement_matrix()
    case_perm, comp_perm = permute_case_complement(case, comp, np.random.default_rng(0))
    assert case_perm.shape == case.shape
    assert torch.equal(case_perm.int() + comp_perm.int(), case.int() + comp.int())
    for i in range(case.shape[0]):
        row = (case_perm[i].tolist(), comp_perm[i].tolist())
        assert row in [(case[i].tolist(), comp[i].tolist()), (comp[i].tolist(), case[i].tolist())]


def test_label_permutation_normalizes_missing():
    case = np.array([[1.0, np.nan], [2.0, 9.0]])
    comp = np.array([[0.0, 1.0], [1.0, 1.0]])
    case_perm, comp_perm = permute_case_complement(case, comp, np.random.default_rng(5))
    values = set(case_perm.flatten().tolist()) | set(comp_perm.flatten().tolist())
    assert values <= {0, 1, 2, MISSING}
    assert int((case_perm == MISSING).sum() + (comp_perm == MISSING).sum()) == 2


def test_exposure_permutation_is_a_row_shuffle():
    exposure = torch.arange(20, dtype=torch.float64).reshape(10, 2)
    shuffled = permute_exposure(exposure, np.random.default_rng(1))
    assert shuffled.shape == exposure.shape
    assert sorted(shuffled[:, 0].tolist()) == exposure[:, 0].tolist()
    # rows move as a whole
    assert torch.equal(shuffled[:, 1] - shuffled[:, 0], torch.ones(10, dtype=torch.float64))


def test_replicate_seeds_reproducible():
    a = [np.random.default_rng(s).random() for s in spawn_replicate_seeds(42, 5)]
    b = [np.random.default_rng(s).random() for s in spawn_replicate_seeds(42, 5)]
    assert a == b
    assert len(set(a)) == 5


def test_create_permuted_genotype_datasets(small_store, tmp_path):
    paths = create_permuted_datasets(small_store, tmp_path / "perm", n_permutations=4, seed=9,
                                     chunk_size=3)
    assert len(paths) == 4
    assert [p.name for p in paths] == [f"genotypes.permute{i}.pt" for i in range(1, 5)]
    observed_sum = small_store.case_matrix().int() + small_store.complement_matrix().int()
    for path in paths:
        case, comp = load_permuted_dataset(path)
        assert case.shape == (small_store.n_families, small_store.n_snps)
        assert torch.equal(case.int() + comp.int(), observed_sum)
    assert not list((tmp_path / "perm").glob("*.tmp"))


def test_permuted_datasets_reproducible(small_store, tmp_path):
    first = create_permuted_datasets(small_store, tmp_path / "a", n_permutations=3, seed=2)
    second = create_permuted_datasets(small_store, tmp_path / "b", n_permutations=3, seed=2,
                                      chunk_size=1)
    for p, q in zip(first, second):
        for x, y in zip(load_permuted_dataset(p), load_permuted_dataset(q)):
            assert torch.equal(x, y)


def test_create_permuted_exposures(tmp_path):
    mode = ExposureAwareMode(exposure=np.arange(12, dtype=np.float64))
    paths = create_permuted_datasets(mode, tmp_path, n_permutations=3, seed=4)
    assert [p.name for p in paths] == [f"exposure.permute{i}.pt" for i in range(1, 4)]
    for path in paths:
        exposure = load_permuted_exposure(path)
        assert exposure.shape == (12, 1)
        assert sorted(exposure[:, 0].tolist()) == list(range(12))


def test_load_permuted_store_keeps_metadata(small_store, tmp_path):
    path = create_permuted_datasets(small_store, tmp_path, n_permutations=1, seed=0)[0]
    store = load_permuted_store(small_store, path)
    assert store.ld_block_vec == small_store.ld_block_vec
    assert store.n_families == small_store.n_families


def test_load_missing_or_corrupt_replicate(tmp_path):
    with pytest.raises(IOFailure):
        load_permuted_dataset(tmp_path / "genotypes.permute1.pt")
    bad = tmp_path / "genotypes.permute2.pt"
    bad.write_bytes(b"not a tensor file")
    with pytest.raises(IOFailure) as info:
        load_permuted_dataset(bad)
    assert info.value.path == str(bad)
