"""
Per-island GA result files and their consolidation into one ranked table.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from .errors import AnnotationMismatch, IOFailure
from .utils import atomic_write

logger = logging.getLogger(__name__)

ISLAND_TEMPLATE = "island{}.csv"
ID_COLS = ('island', 'chromosome_size', 'fitness_score')


def snp_columns(chromosome_size):
    return [f"snp{j + 1}" for j in range(chromosome_size)]


@dataclass
class CombinedResults:
    """
    Parameters:
    raw : pd.DataFrame
        Every row of every island file, concatenated
    combined : pd.DataFrame
        Deduplicated, truncated per island and sorted by fitness score, with
        annotation columns when given
    """
    raw: pd.DataFrame
    combined: pd.DataFrame


def island_results_frame(island_id, snp_sets, results):
    """Rows of one island: the SNP-set and every FitnessResult field."""
    rows = []
    for snps, result in zip(snp_sets, results):
        row = {'island': island_id, 'chromosome_size': len(snps)}
        row.update(result.to_record(snps))
        rows.append(row)
    df = pd.DataFrame(rows)
    if df['chromosome_size'].nunique() > 1:
        raise ValueError("All chromosomes of an island must have the same size.")
    return df


def write_island_results(results_dir, island_id, snp_sets, results):
    """
    Write an island's final chromosomes and their fitness results.

    Parameters:
    results_dir : str or Path
        Directory shared by all islands of one GA run
    island_id : int
        Island number
    snp_sets : list of sequences
        The island's top chromosomes
    results : list of FitnessResult
        Their fitness results, in the same order

    Returns:
    Path
        Path of the written file
    """
    if len(snp_sets) != len(results):
        raise ValueError("One FitnessResult is needed per SNP-set.")
    if not snp_sets:
        raise ValueError("An island must report at least one chromosome.")
    df = island_results_frame(island_id, snp_sets, results)
    path = Path(results_dir) / ISLAND_TEMPLATE.format(island_id)
    with atomic_write(path) as tmp:
        df.to_csv(tmp, index=False)
    return path


def read_island_results(path):
    """
    Read one island result file.

    Raises:
    IOFailure
        If the file is missing, unparsable, empty or lacks required columns
    """
    try:
        df = pd.read_csv(path)
    except FileNotFoundError as e:
        raise IOFailure("Island result file not found", path) from e
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise IOFailure(f"Corrupt island result file: {e}", path) from e

    missing = [c for c in ID_COLS if c not in df.columns]
    if missing:
        raise IOFailure(f"Island result file lacks columns {missing}", path)
    if df.empty:
        raise IOFailure("Island result file has no rows", path)
    sizes = df['chromosome_size'].unique()
    if len(sizes) != 1:
        raise IOFailure(f"Island result file mixes chromosome sizes {sorted(sizes)}", path)
    missing = [c for c in snp_columns(int(sizes[0])) if c not in df.columns]
    if missing:
        raise IOFailure(f"Island result file lacks columns {missing}", path)
    return df


def _snp_set_key(df, cols):
    return [frozenset(row) for row in df[cols].itertuples(index=False, name=None)]


def annotate(combined, annotations, n_snps, chromosome_size):
    """
    Join per-SNP annotations onto the combined table by column position.

    For every SNP slot ``snp{j}`` and every annotation column ``c`` a column
    ``snp{j}_{c}`` is added.

    Raises:
    AnnotationMismatch
        If the annotation table does not have one row per SNP column, or a
        chromosome references a SNP index outside the annotated columns
    """
    if len(annotations) != n_snps:
        raise AnnotationMismatch(f"Annotation table has {len(annotations)} rows but the "
                                 f"genetic data has {n_snps} SNP columns.")
    ann = annotations.reset_index(drop=True)
    out = combined.copy()
    for col in snp_columns(chromosome_size):
        positions = out[col].to_numpy(dtype=np.int64)
        bad = sorted(set(positions[(positions < 0) | (positions >= n_snps)].tolist()))
        if bad:
            raise AnnotationMismatch(f"Column {col} references SNP index(es) {bad} outside the "
                                     f"{n_snps} annotated SNP columns.")
        for ann_col in ann.columns:
            out[f"{col}_{ann_col}"] = ann[ann_col].to_numpy()[positions]
    return out


def combine_islands(results_dir, annotations=None, n_top_chroms_per_island=None,
                    n_snps=None, raw_output_path=None, pattern="island*.csv", config=None):
    """
    Merge the island files of one GA run into a ranked table.

    Chromosomes naming the same unordered SNP-set are duplicates; the one with
    the higher fitness score is kept as it was written (SNP order included).
    The deduplicated rows are then cut to ``n_top_chroms_per_island`` per
    originating island and sorted by fitness score, best first.

    Parameters:
    results_dir : str or Path
        Directory holding the island files
    annotations : pd.DataFrame, optional
        One row per SNP column of the genetic data (e.g. RSID, REF, ALT)
    n_top_chroms_per_island : int, optional
        Rows kept per island. None keeps all
    n_snps : int or GenotypeStore, optional
        Number of SNP columns used in preprocessing; needed with annotations
    raw_output_path : str or Path, optional
        Where to save the concatenated raw rows
    pattern : str, default 'island*.csv'
        Glob for the island files
    config : AnalysisConfig, optional
        Supplies ``n_top_chroms_per_island`` when it is not passed directly

    Returns:
    CombinedResults
    """
    if n_top_chroms_per_island is None and config is not None:
        n_top_chroms_per_island = config.n_top_chroms_per_island
    results_dir = Path(results_dir)
    paths = sorted(results_dir.glob(pattern))
    if not paths:
        raise IOFailure("No island result files found", results_dir)

    frames = [read_island_results(p) for p in paths]
    sizes = {int(f['chromosome_size'].iloc[0]) for f in frames}
    if len(sizes) != 1:
        raise IOFailure(f"Island files mix chromosome sizes {sorted(sizes)}", results_dir)
    chromosome_size = sizes.pop()
    cols = snp_columns(chromosome_size)

    raw = pd.concat(frames, ignore_index=True)
    logger.info(f"Read {len(raw)} chromosomes from {len(paths)} islands")
    if raw_output_path is not None:
        with atomic_write(raw_output_path) as tmp:
            raw.to_csv(tmp, index=False)

    ranked = raw.assign(_snp_set=_snp_set_key(raw, cols))
    ranked = ranked.sort_values('fitness_score', ascending=False, kind='mergesort')
    ranked = ranked.drop_duplicates('_snp_set', keep='first')
    if n_top_chroms_per_island is not None:
        ranked = ranked.groupby('island', sort=False).head(n_top_chroms_per_island)
    combined = (ranked.drop(columns='_snp_set')
                      .sort_values('fitness_score', ascending=False, kind='mergesort')
                      .reset_index(drop=True))

    if annotations is not None:
        if n_snps is None:
            raise ValueError("n_snps is required to join annotations.")
        n_snps = getattr(n_snps, 'n_snps', n_snps)
        combined = annotate(combined, annotations, int(n_snps), chromosome_size)

    return CombinedResults(raw=raw, combined=combined)
