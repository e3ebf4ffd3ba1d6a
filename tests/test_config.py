import numpy as np
import pytest
import yaml

from pyGADGETS import (
    AnalysisConfig,
    ScoringConfig,
    as_analysis_config,
    create_permuted_datasets,
    encode_exposure,
    epistasis_test,
    estimate_null_calibration,
    load_config,
)
from pyGADGETS.config import NullCalibration


def test_load_config_overrides_defaults(tmp_path):
    path = tmp_path / "gadgets.yaml"
    path.write_text(yaml.safe_dump({
        'scoring': {'weight_function_int': 3, 'aggregation': 'minimum'},
        'permutation': {'n_permutations': 200, 'n_permuted_datasets': 20, 'seed': 17, 'n_jobs': 2},
        'aggregation': {'n_top_chroms_per_island': 5},
    }))
    config = load_config(path)
    assert config.scoring.weight_function_int == 3
    assert config.scoring.aggregation == 'minimum'
    assert config.scoring.recode_test_stat == 1.64
    assert config.n_permutations == 200
    assert config.n_permuted_datasets == 20
    assert config.seed == 17
    assert config.n_jobs == 2
    assert config.chunk_size == 500
    assert config.n_top_chroms_per_island == 5


def test_empty_config_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AnalysisConfig()


@pytest.mark.parametrize("kwargs", [
    {'weight_function_int': 0},
    {'n_different_snps_weight': -1},
    {'recessive_ref_prop': 1.0},
])
def test_scoring_config_validation(kwargs):
    with pytest.raises(ValueError):
        ScoringConfig(**kwargs)


def test_max_weight_index():
    assert ScoringConfig().max_weight_index(3) == 9


def test_null_calibration_standardize():
    calibration = NullCalibration(null_mean=[1, 2], null_sd=[2, 4])
    assert calibration.null_mean == (1.0, 2.0)
    assert calibration.standardize([3.0, 6.0]).tolist() == [1.0, 1.0]


def test_as_analysis_config():
    run = AnalysisConfig(seed=4)
    assert as_analysis_config(run) is run
    assert as_analysis_config(None) == AnalysisConfig()
    scoring = ScoringConfig(weight_function_int=3)
    assert as_analysis_config(scoring).scoring is scoring
    with pytest.raises(TypeError):
        as_analysis_config({'seed': 4})


def test_overrides_ignore_unset_values():
    run = AnalysisConfig(n_permutations=50, seed=2)
    assert run.with_overrides(n_permutations=None, seed=None) == run
    assert run.with_overrides(seed=9).seed == 9


def test_analysis_config_drives_epistasis_test(causal_trios):
    run = AnalysisConfig(n_permutations=12, seed=5, chunk_size=4)
    result = epistasis_test([2, 5], causal_trios.store, run)
    assert result.permuted.shape == (12,)
    same = epistasis_test([2, 5], causal_trios.store, run.scoring, n_permutations=12, seed=5)
    np.testing.assert_array_equal(result.permuted, same.permuted)
    assert epistasis_test([2, 5], causal_trios.store, run, n_permutations=7).permuted.shape == (7,)


def test_analysis_config_drives_permuted_datasets(small_store, tmp_path):
    run = AnalysisConfig(n_permuted_datasets=3, seed=6)
    paths = create_permuted_datasets(small_store, tmp_path / "perm", config=run)
    assert len(paths) == 3
    assert len(create_permuted_datasets(small_store, tmp_path / "two", config=run,
                                        n_permutations=2)) == 2


def test_analysis_config_drives_null_calibration(causal_trios):
    exposure = np.arange(causal_trios.store.n_families) % 2
    X, _ = encode_exposure(exposure)
    run = AnalysisConfig(seed=11, chunk_size=7)
    a = estimate_null_calibration(causal_trios.store, X, chromosome_size=2, config=run,
                                  n_random_sets=30)
    b = estimate_null_calibration(causal_trios.store, X, chromosome_size=2,
                                  n_random_sets=30, seed=11)
    assert a == b
