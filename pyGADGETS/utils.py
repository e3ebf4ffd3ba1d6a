import os
import tempfile
import multiprocessing as mp
from contextlib import contextmanager
from functools import partial
from pathlib import Path

from tqdm.auto import tqdm


def get_snp_mappings(snps):
    """
    Create mappings from SNP name to column index.

    Parameters:
    snps : list
        List of SNP names

    Returns:
    dict
        Dictionary mapping SNP name to column index
    """
    return {s: j for j, s in enumerate(snps)}


def _current_umask():
    # os.umask only reports the mask by setting it
    mask = os.umask(0)
    os.umask(mask)
    return mask


@contextmanager
def atomic_write(path):
    """
    Yield a temporary path next to ``path`` and move it into place on success.

    Readers never observe a partially written file: either the old file (or
    nothing) or the complete new one. The final file gets the permissions a
    plain open(path, "w") would give it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    try:
        yield tmp_name
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def chunked(items, chunk_size):
    """Split a list into consecutive chunks of at most chunk_size items."""
    items = list(items)
    chunk_size = max(1, int(chunk_size))
    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]


def run_chunks(worker, items, n_jobs=1, chunk_size=500, show_progress=False,
               desc="Processing", **worker_kwargs):
    """
    Apply ``worker`` to chunks of ``items`` serially or in a process pool.

    Parameters:
    worker : callable
        Top-level function taking a list of items (plus keyword arguments)
        and returning a list of results
    items : sequence
        Work items, e.g. per-replicate seed sequences
    n_jobs : int, default 1
        Number of worker processes; 1 runs in the calling process
    chunk_size : int, default 500
        Items handed to a worker at once
    show_progress : bool, default False
        Whether to show a progress bar
    desc : str
        Progress bar label
    **worker_kwargs
        Broadcast to every worker call

    Returns:
    list
        Flattened results in the order of ``items``
    """
    chunks = chunked(items, chunk_size)
    _worker = partial(worker, **worker_kwargs)

    if n_jobs == 1 or len(chunks) <= 1:
        if show_progress:
            result_lists = [_worker(chunk) for chunk in tqdm(chunks, desc=desc)]
        else:
            result_lists = [_worker(chunk) for chunk in chunks]
    else:
        with mp.Pool(processes=n_jobs) as pool:
            if show_progress:
                pbar = tqdm(total=len(chunks), desc=desc)
                async_results = [
                    pool.apply_async(_worker, args=(chunk,), callback=lambda _: pbar.update(1))
                    for chunk in chunks
                ]
                result_lists = [ar.get() for ar in async_results]
                pbar.close()
            else:
                result_lists = pool.map(_worker, chunks)

    return [item for sub in result_lists for item in sub]
