import logging
import os
import tempfile

import numpy as np
import pandas as pd

import pyGADGETS


def main():

    logging.basicConfig(level=logging.INFO)

    # Step 1: Simulate trios and build the genotype store
    '''
    Parameters:
    n_families : int, Number of case-parent trios.
    n_snps : int, Number of SNPs.
    risk_snps : tuple, Columns of the causal SNP-set.
    risk_allele_effect : float, Relative risk of carrying the full risk set.
    ld_block_vec : list, Cumulative upper bounds of the LD blocks.
    seed : int, Random seed.
    '''
    sim = pyGADGETS.simulate_trios(
        n_families=1000,
        n_snps=10,
        risk_snps=(2, 5, 8),
        risk_allele_effect=3.0,
        ld_block_vec=[3, 6, 10],
        seed=15
    )
    store = sim.store
    run = pyGADGETS.AnalysisConfig(n_permutations=1000, seed=20,
                                   n_jobs=os.cpu_count() or 1,
                                   n_top_chroms_per_island=3,
                                   show_progress=True)
    config = run.scoring

    # Step 2: Score candidate SNP-sets (what the GA calls for every chromosome)
    top = pyGADGETS.score([2, 5, 8], store, config)
    other = pyGADGETS.score([0, 4, 9], store, config)
    print(f"fitness {{2,5,8}} = {top.fitness_score:.2f}, {{0,4,9}} = {other.fitness_score:.2f}")

    # Step 3: Epistasis test of the top SNP-set (an h-value, the set came from the data)
    '''
    Parameters:
    snps : list, SNP-set to test.
    store : GenotypeStore.
    config : AnalysisConfig, scoring constants plus n_permutations, seed,
        n_jobs and show_progress (also loadable with pyGADGETS.load_config).
    '''
    epi = pyGADGETS.epistasis_test([2, 5, 8], store, run)
    print(f"epistasis h-value: {epi.pval:.4f}")

    # Step 4: Write two islands and combine them
    with tempfile.TemporaryDirectory() as results_dir:
        rng = np.random.default_rng(1)
        for island in (1, 2):
            snp_sets = [list(rng.choice(10, 3, replace=False)) for _ in range(5)]
            snp_sets.append([2, 5, 8])
            results = [pyGADGETS.score(s, store, config) for s in snp_sets]
            pyGADGETS.write_island_results(results_dir, island, snp_sets, results)

        annotations = pd.DataFrame({
            'RSID': [f"rs{1000 + j}" for j in range(store.n_snps)],
            'REF': ['A'] * store.n_snps,
            'ALT': ['G'] * store.n_snps,
        })
        combined = pyGADGETS.combine_islands(results_dir, annotations=annotations,
                                             n_snps=store, config=run)
        print(combined.combined.head())


if __name__ == "__main__":
    main()
