"""
Configuration objects for pyGADGETS.

Scoring constants, the scoring mode and the null calibration record are
immutable and passed into every scoring call, so one analysis can be scored
from many processes at once without shared state.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np
import torch
import yaml


@dataclass(frozen=True)
class ScoringConfig:
    """
    Constants of the fitness function.

    Parameters:
    weight_function_int : int, default 2
        Base of the exponential family weight, ``w = weight_function_int ** x``
    n_different_snps_weight : int, default 2
        Multiplier for the number of SNPs where case and complement differ
    n_both_one_weight : int, default 1
        Multiplier for the number of SNPs where case and complement are both
        heterozygous
    recessive_ref_prop : float, default 0.75
        Reference proportion the informativeness ``q`` is compared against
        when deciding on recessive coding
    recode_test_stat : float, default 1.64
        Minimum test statistic needed to recode a SNP as recessive
    aggregation : str or callable, default 'carrier_weighted'
        Name of an entry in ``fitness.FITNESS_AGGREGATORS`` or a callable
        ``f(difference_vector, case_carrier_prop) -> float``
    """
    weight_function_int: int = 2
    n_different_snps_weight: int = 2
    n_both_one_weight: int = 1
    recessive_ref_prop: float = 0.75
    recode_test_stat: float = 1.64
    aggregation: Union[str, Callable] = 'carrier_weighted'

    def __post_init__(self):
        if self.weight_function_int < 1:
            raise ValueError("weight_function_int must be at least 1.")
        if self.n_different_snps_weight < 0 or self.n_both_one_weight < 0:
            raise ValueError("SNP count weights cannot be negative.")
        if not 0.0 < self.recessive_ref_prop < 1.0:
            raise ValueError("recessive_ref_prop must lie strictly between 0 and 1.")

    def max_weight_index(self, chromosome_size: int) -> int:
        """Largest weighted difference index reachable for a chromosome size."""
        return (self.n_different_snps_weight + self.n_both_one_weight) * chromosome_size


@dataclass(frozen=True)
class NullCalibration:
    """
    Per-component standardization constants estimated from random SNP-sets.

    Component order is (transmission, exposure).
    """
    null_mean: Tuple[float, ...]
    null_sd: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, 'null_mean', tuple(float(v) for v in self.null_mean))
        object.__setattr__(self, 'null_sd', tuple(float(v) for v in self.null_sd))
        if len(self.null_mean) != len(self.null_sd):
            raise ValueError("null_mean and null_sd must have the same length.")
        if any(sd <= 0 or not np.isfinite(sd) for sd in self.null_sd):
            raise ValueError("null_sd entries must be positive and finite.")

    def standardize(self, components: Sequence[float]) -> np.ndarray:
        comps = np.asarray(components, dtype=np.float64)
        return (comps - np.asarray(self.null_mean)) / np.asarray(self.null_sd)

    def to_dict(self):
        return {'null_mean': list(self.null_mean), 'null_sd': list(self.null_sd)}


IDENTITY_CALIBRATION = NullCalibration(null_mean=(0.0, 0.0), null_sd=(1.0, 1.0))


@dataclass(frozen=True)
class TransmissionMode:
    """Score SNP-sets on allele transmission alone."""
    name: str = 'transmission'


@dataclass(frozen=True, eq=False)
class ExposureAwareMode:
    """
    Score SNP-sets jointly with the exposure of each family (GxE / GxGxE).

    Parameters:
    exposure : array-like
        families x levels design matrix with the reference level dropped
        (see ``exposure.encode_exposure``); stored as a float64 tensor
    calibration : NullCalibration
        Standardization constants for the transmission and exposure
        components
    exposure_levels : tuple of str, optional
        Names of the non-reference levels, one per column of ``exposure``
    """
    exposure: torch.Tensor
    calibration: NullCalibration = IDENTITY_CALIBRATION
    exposure_levels: Tuple[str, ...] = ()
    name: str = 'exposure'

    def __post_init__(self):
        exposure = torch.as_tensor(np.asarray(self.exposure, dtype=np.float64))
        if exposure.dim() == 1:
            exposure = exposure.unsqueeze(1)
        if exposure.dim() != 2:
            raise ValueError("Exposure must be a families x levels matrix.")
        object.__setattr__(self, 'exposure', exposure)
        if not self.exposure_levels:
            levels = tuple(f"exposure{j + 1}" for j in range(exposure.shape[1]))
            object.__setattr__(self, 'exposure_levels', levels)
        if len(self.exposure_levels) != exposure.shape[1]:
            raise ValueError("One level name is needed per exposure column.")

    def with_exposure(self, exposure) -> 'ExposureAwareMode':
        """Same calibration and level names, different exposure rows."""
        return ExposureAwareMode(exposure=exposure,
                                 calibration=self.calibration,
                                 exposure_levels=self.exposure_levels)

    def with_calibration(self, calibration: NullCalibration) -> 'ExposureAwareMode':
        return ExposureAwareMode(exposure=self.exposure,
                                 calibration=calibration,
                                 exposure_levels=self.exposure_levels)


ScoringMode = Union[TransmissionMode, ExposureAwareMode]


@dataclass
class AnalysisConfig:
    """
    Run-level settings around the scorer.

    Every permutation, calibration and aggregation entry point accepts an
    AnalysisConfig as its ``config``; explicit keyword arguments override
    the matching fields.

    Parameters:
    scoring : ScoringConfig
        Fitness function constants
    n_permutations : int, default 10000
        Replicates per SNP-set permutation test
    n_permuted_datasets : int, default 100
        Permuted datasets written for the global test
    seed : int, optional
        Seed for replicate generation; None draws fresh entropy
    n_jobs : int, default 1
        Worker processes for permutation loops
    chunk_size : int, default 500
        Replicates handed to a worker at once
    n_top_chroms_per_island : int, optional
        Rows kept per island when combining island results; None keeps all
    show_progress : bool, default False
        Show tqdm progress bars
    """
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    n_permutations: int = 10000
    n_permuted_datasets: int = 100
    seed: Optional[int] = None
    n_jobs: int = 1
    chunk_size: int = 500
    n_top_chroms_per_island: Optional[int] = None
    show_progress: bool = False

    def with_overrides(self, **overrides) -> 'AnalysisConfig':
        """Copy with every override that is not None applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def as_analysis_config(config=None) -> AnalysisConfig:
    """Accept None, a ScoringConfig or an AnalysisConfig."""
    if config is None:
        return AnalysisConfig()
    if isinstance(config, AnalysisConfig):
        return config
    if isinstance(config, ScoringConfig):
        return AnalysisConfig(scoring=config)
    raise TypeError(f"Expected a ScoringConfig or AnalysisConfig, got {type(config).__name__}.")


def load_config(config_path: str) -> AnalysisConfig:
    """Load an AnalysisConfig from a YAML file."""
    with open(config_path, 'r') as f:
        config_dict = yaml.safe_load(f) or {}

    config = AnalysisConfig()

    if 'scoring' in config_dict:
        config.scoring = ScoringConfig(**config_dict['scoring'])

    if 'permutation' in config_dict:
        permutation_config = config_dict['permutation']
        config.n_permutations = permutation_config.get('n_permutations', config.n_permutations)
        config.n_permuted_datasets = permutation_config.get('n_permuted_datasets',
                                                            config.n_permuted_datasets)
        config.seed = permutation_config.get('seed', config.seed)
        config.n_jobs = permutation_config.get('n_jobs', config.n_jobs)
        config.chunk_size = permutation_config.get('chunk_size', config.chunk_size)
        config.show_progress = permutation_config.get('show_progress', config.show_progress)

    if 'aggregation' in config_dict:
        aggregation_config = config_dict['aggregation']
        config.n_top_chroms_per_island = aggregation_config.get(
            'n_top_chroms_per_island', config.n_top_chroms_per_island)

    return config
