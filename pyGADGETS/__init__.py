"""
pyGADGETS - Fitness scoring and permutation inference for GADGETS

This package scores candidate SNP-sets against case-parent trio or
discordant-sibling data, runs the permutation tests built on that score and
consolidates the per-island output of a genetic-algorithm search.
"""

# Import key functions for easy access
from .config import (
    AnalysisConfig,
    ExposureAwareMode,
    NullCalibration,
    ScoringConfig,
    TransmissionMode,
    as_analysis_config,
    load_config,
)
from .errors import (
    AnnotationMismatch,
    GadgetsError,
    InsufficientData,
    InvalidCandidateSet,
    IOFailure,
    PolicyViolationWarning,
)
from .genotype_store import GenotypeStore, MISSING
from .weights import build_weight_lookup, family_weights
from .fitness import FitnessResult, RiskRequirement, score, score_matrices, FITNESS_AGGREGATORS
from .exposure import encode_exposure
from .calibration import estimate_null_calibration, save_null_calibration, load_null_calibration
from .permutation import (
    create_permuted_datasets,
    load_permuted_dataset,
    load_permuted_exposure,
    load_permuted_store,
)
from .significance import epistasis_test, maternal_fetal_test, gxe_test, global_test
from .islands import combine_islands, write_island_results, read_island_results
from .simulate import simulate_trios

__version__ = "0.1.0"

__all__ = [
    'AnalysisConfig',
    'ExposureAwareMode',
    'NullCalibration',
    'ScoringConfig',
    'TransmissionMode',
    'as_analysis_config',
    'load_config',
    'AnnotationMismatch',
    'GadgetsError',
    'InsufficientData',
    'InvalidCandidateSet',
    'IOFailure',
    'PolicyViolationWarning',
    'GenotypeStore',
    'MISSING',
    'build_weight_lookup',
    'family_weights',
    'FitnessResult',
    'RiskRequirement',
    'score',
    'score_matrices',
    'FITNESS_AGGREGATORS',
    'encode_exposure',
    'estimate_null_calibration',
    'save_null_calibration',
    'load_null_calibration',
    'create_permuted_datasets',
    'load_permuted_dataset',
    'load_permuted_exposure',
    'load_permuted_store',
    'epistasis_test',
    'maternal_fetal_test',
    'gxe_test',
    'global_test',
    'combine_islands',
    'write_island_results',
    'read_island_results',
    'simulate_trios',
]
