"""
K-mer presence/absence detection across a batch of sequences.

The detection matrix has one row per possible k-mer (4**k rows, in index
order) and one column per input sequence (in input order). Entry (w, s) is
True when k-mer w occurs at least once in sequence s. Sequences that are
shorter than k or hold no valid window get an all-False column.
"""

import logging
import multiprocessing as mp
from functools import partial
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .exceptions import InvalidArgumentError
from .genomic_types import (
    DetectionMatrix,
    DetectionVector,
    KmerIndexArray,
    SequenceBatch,
    SequenceLike,
)
from .kmers import _kmer_index_array, all_kmers
from .parameter_config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_NUM_PROCESSES,
    BuildParams,
    KmerParams,
    validate_params,
)
from .utils import chunked, sequence_batch_to_bytes, sequence_to_bytes

logger = logging.getLogger(__name__)


def detect_kmers(sequence: SequenceLike, kmer_size: int) -> DetectionVector:
    """
    Presence flags of every k-mer in a single sequence.

    Args:
        sequence: The sequence to scan.
        kmer_size: K-mer length.

    Returns:
        A boolean array of length 4**kmer_size.
    """
    k = validate_params(KmerParams, kmer_size=kmer_size).kmer_size
    flags = np.zeros(4**k, dtype=bool)
    flags[_kmer_index_array(sequence_to_bytes(sequence), k)] = True
    return flags


def _detect_chunk(
    task: Tuple[int, List[bytes]], kmer_size: int
) -> Tuple[int, List[KmerIndexArray]]:
    """Worker: distinct k-mer indices of each sequence in one chunk."""
    chunk_idx, chunk = task
    return chunk_idx, [np.unique(_kmer_index_array(data, kmer_size)) for data in chunk]


def detect_kmers_across_sequences(
    sequences: SequenceBatch,
    kmer_size: int,
    procs: int = DEFAULT_NUM_PROCESSES,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    show_progress: bool = False,
) -> DetectionMatrix:
    """
    Builds the k-mer detection matrix for a batch of sequences.

    Each column is computed independently, so with ``procs > 1`` the batch is
    split into chunks that worker processes scan in parallel. Column order
    always follows input order.

    Args:
        sequences: Ordered sequences to scan.
        kmer_size: K-mer length; must be in [1, MAX_KMER_SIZE].
        procs: Number of worker processes. 1 scans in the calling process.
        chunk_size: Sequences per worker task.
        show_progress: Display a tqdm progress bar.

    Returns:
        A boolean array of shape (4**kmer_size, len(sequences)).

    Raises:
        InvalidArgumentError: If any parameter is out of range or a sequence
            has an unsupported type.
    """
    params = validate_params(
        BuildParams,
        kmer_size=kmer_size,
        procs=procs,
        chunk_size=chunk_size,
        show_progress=show_progress,
    )
    k = params.kmer_size
    batch = sequence_batch_to_bytes(sequences)
    matrix = np.zeros((4**k, len(batch)), dtype=bool)
    logger.info(
        f"Detecting {k}-mers in {len(batch)} sequences using {params.procs} process(es)."
    )

    if params.procs == 1 or len(batch) <= params.chunk_size:
        for col, data in enumerate(
            tqdm(batch, desc="Detecting k-mers", disable=not params.show_progress)
        ):
            matrix[_kmer_index_array(data, k), col] = True
    else:
        tasks = list(enumerate(chunked(batch, params.chunk_size)))
        worker = partial(_detect_chunk, kmer_size=k)
        with mp.Pool(processes=params.procs) as pool:
            for chunk_idx, chunk_kmers in tqdm(
                pool.imap_unordered(worker, tasks),
                total=len(tasks),
                desc="Detecting k-mers",
                disable=not params.show_progress,
            ):
                first_col = chunk_idx * params.chunk_size
                for offset, kmer_indices in enumerate(chunk_kmers):
                    matrix[kmer_indices, first_col + offset] = True

    logger.debug(f"Detection matrix shape: {matrix.shape}, {int(matrix.sum())} hits.")
    return matrix


def detection_to_dataframe(
    matrix: DetectionMatrix,
    kmer_size: int,
    sequence_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Labels a detection matrix for tabular use.

    Rows are indexed by k-mer string and columns by `sequence_names`
    (positional integers when omitted).

    Raises:
        InvalidArgumentError: If the matrix shape does not match `kmer_size`
            or the number of names.
    """
    kmer_labels = all_kmers(kmer_size)
    if matrix.ndim != 2 or matrix.shape[0] != len(kmer_labels):
        raise InvalidArgumentError(
            f"Detection matrix of shape {matrix.shape} does not have "
            f"{len(kmer_labels)} rows for kmer_size={kmer_size}."
        )
    if sequence_names is not None and len(sequence_names) != matrix.shape[1]:
        raise InvalidArgumentError(
            f"Got {len(sequence_names)} sequence names for {matrix.shape[1]} columns."
        )
    columns = list(sequence_names) if sequence_names is not None else None
    return pd.DataFrame(matrix, index=pd.Index(kmer_labels, name="kmer"), columns=columns)
