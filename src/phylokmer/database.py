"""
Genus-conditional k-mer probability database.

Building the database is a two-phase process:

1. `GenusRegistry` scans the genus labels once, assigning indices in
   first-occurrence order and counting sequences per genus. Each genus starts
   from a pseudocount of 1, so its count is (number of sequences + 1).
2. `DatabaseBuilder.count_kmers` tallies every k-mer occurrence per genus and
   over the whole corpus.

The counts are then smoothed into

    prior[w]     = (corpus_count[w] + 0.5) / (n_sequences + 1)
    P(w | g)     = (count[w, g] + prior[w]) / genus_count[g]

which is never zero, as required by log-probability classifiers downstream.
"""

import logging
import multiprocessing as mp
from dataclasses import dataclass
from functools import partial
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .exceptions import InternalConsistencyError, InvalidArgumentError
from .genomic_types import (
    CountMatrix,
    GenusIndex,
    GenusLabel,
    GenusLabels,
    PriorCountVector,
    ProbabilityMatrix,
    SequenceBatch,
)
from .kmers import _kmer_index_array, all_kmers
from .parameter_config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_NUM_PROCESSES,
    BuildParams,
    validate_params,
)
from .utils import chunked, sequence_batch_to_bytes

logger = logging.getLogger(__name__)

PRIOR_PSEUDOCOUNT = 0.5
GENUS_PSEUDOCOUNT = 1


class GenusRegistry:
    """
    Ordered mapping between genus labels and matrix column indices.

    Labels keep the order in which they were first registered; this order is
    the column order of the probability matrix. Alongside the index, the
    registry counts how many sequences carry each label, starting every genus
    at `GENUS_PSEUDOCOUNT`.
    """

    def __init__(self) -> None:
        self._labels: List[GenusLabel] = []
        self._lookup: Dict[GenusLabel, GenusIndex] = {}
        self._sequence_counts: List[int] = []

    @classmethod
    def from_labels(cls, genera: Iterable[GenusLabel]) -> "GenusRegistry":
        """Registers one sequence for every label in `genera`, in order."""
        registry = cls()
        for genus in genera:
            registry.register(genus)
        return registry

    def register(self, genus: GenusLabel) -> GenusIndex:
        """
        Records one sequence labeled `genus`.

        Args:
            genus: The label of the sequence.

        Returns:
            The column index of `genus`; a new label gets the next free index.

        Raises:
            InvalidArgumentError: If `genus` is not a string.
        """
        if not isinstance(genus, str):
            raise InvalidArgumentError(
                f"Genus labels must be strings, got {type(genus).__name__}: {genus!r}."
            )
        index = self._lookup.get(genus)
        if index is None:
            index = len(self._labels)
            self._lookup[genus] = index
            self._labels.append(genus)
            self._sequence_counts.append(GENUS_PSEUDOCOUNT)
        self._sequence_counts[index] += 1
        return index

    def index_of(self, genus: GenusLabel) -> GenusIndex:
        """
        Column index of an already registered genus.

        Raises:
            InternalConsistencyError: If `genus` was never registered. Lookups
                only happen after every label has been registered, so this
                signals a bug rather than bad input.
        """
        try:
            return self._lookup[genus]
        except KeyError:
            raise InternalConsistencyError(
                f"Genus {genus!r} is missing from the registry of {len(self)} genera."
            ) from None

    @property
    def labels(self) -> GenusLabels:
        """Distinct labels in first-occurrence order."""
        return list(self._labels)

    def sequence_counts(self) -> np.ndarray:
        """Per-genus sequence counts including the pseudocount, as float64."""
        return np.asarray(self._sequence_counts, dtype=np.float64)

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, genus: object) -> bool:
        return genus in self._lookup

    def __iter__(self) -> Iterator[GenusLabel]:
        return iter(self._labels)


def _check_parallel_lengths(n_sequences: int, n_labels: int) -> None:
    if n_sequences != n_labels:
        raise InvalidArgumentError(
            f"Number of sequences ({n_sequences}) does not match number of genus labels ({n_labels})."
        )


def _count_chunk(
    chunk: List[Tuple[bytes, GenusIndex]], kmer_size: int, n_genera: int
) -> CountMatrix:
    """Worker: k-mer occurrence counts of one chunk of labeled sequences."""
    n_kmers = 4**kmer_size
    # Cell (w, g) of the row-major count matrix, one entry per occurrence
    flat_cells = [
        _kmer_index_array(data, kmer_size) * n_genera + genus_idx
        for data, genus_idx in chunk
    ]
    if not flat_cells:
        return np.zeros((n_kmers, n_genera), dtype=np.int64)
    counts = np.bincount(np.concatenate(flat_cells), minlength=n_kmers * n_genera)
    return counts.astype(np.int64, copy=False).reshape(n_kmers, n_genera)


@dataclass(frozen=True, eq=False)
class KmerDatabase:
    """
    Genus-conditional k-mer probabilities.

    Attributes:
        conditional_probs: float64 array of shape (4**kmer_size, n_genera);
            entry (w, g) estimates P(sequence contains k-mer w | genus g).
        genera: Distinct genus labels, in first-occurrence order; position g
            labels column g.
        kmer_size: K-mer length the database was built with.
    """

    conditional_probs: ProbabilityMatrix
    genera: GenusLabels
    kmer_size: int

    @classmethod
    def build(
        cls,
        sequences: SequenceBatch,
        genera: Sequence[GenusLabel],
        kmer_size: int,
        procs: int = DEFAULT_NUM_PROCESSES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        show_progress: bool = False,
    ) -> "KmerDatabase":
        """Same as `build_database`."""
        builder = DatabaseBuilder(
            kmer_size, procs=procs, chunk_size=chunk_size, show_progress=show_progress
        )
        return builder.build(sequences, genera)

    @property
    def num_genera(self) -> int:
        return len(self.genera)

    @property
    def num_kmers(self) -> int:
        return self.conditional_probs.shape[0]

    def genus_index(self, genus: GenusLabel) -> GenusIndex:
        """Column of `genus`; raises KeyError for unknown labels."""
        try:
            return self.genera.index(genus)
        except ValueError:
            raise KeyError(f"Genus {genus!r} is not in the database.") from None

    def genus_probabilities(self, genus: GenusLabel) -> np.ndarray:
        """Conditional probabilities of every k-mer for one genus."""
        return self.conditional_probs[:, self.genus_index(genus)]

    def to_dataframe(self) -> pd.DataFrame:
        """The probability matrix with k-mer strings as index and genera as columns."""
        return pd.DataFrame(
            self.conditional_probs,
            index=pd.Index(all_kmers(self.kmer_size), name="kmer"),
            columns=list(self.genera),
        )


class DatabaseBuilder:
    """
    Builds a `KmerDatabase` from labeled training sequences.

    The individual phases are exposed as methods so they can be run and
    inspected separately; `build` chains them.
    """

    def __init__(
        self,
        kmer_size: int,
        procs: int = DEFAULT_NUM_PROCESSES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        show_progress: bool = False,
    ) -> None:
        self.params: BuildParams = validate_params(
            BuildParams,
            kmer_size=kmer_size,
            procs=procs,
            chunk_size=chunk_size,
            show_progress=show_progress,
        )
        self.kmer_size: int = self.params.kmer_size
        self.n_kmers: int = 4**self.kmer_size

    def index_genera(self, genera: Sequence[GenusLabel]) -> GenusRegistry:
        """Phase one: assign genus indices and count sequences per genus."""
        registry = GenusRegistry.from_labels(genera)
        logger.debug(f"Registered {len(registry)} distinct genera: {registry.labels[:5]}")
        return registry

    def count_kmers(
        self,
        sequences: Sequence[bytes],
        genera: Sequence[GenusLabel],
        registry: GenusRegistry,
    ) -> Tuple[CountMatrix, PriorCountVector]:
        """
        Phase two: count k-mer occurrences per genus and across the corpus.

        Every occurrence counts, including repeats within one sequence.
        With ``procs > 1`` chunks of sequences are counted in worker processes
        into separate partial matrices that are summed afterwards.

        Args:
            sequences: Training sequences as bytes.
            genera: Label of each sequence, parallel to `sequences`.
            registry: Registry produced by `index_genera` for these labels.

        Returns:
            A tuple ``(counts, prior_counts)``: the (4**k, n_genera) count
            matrix and its row sums, the corpus-wide count of each k-mer.

        Raises:
            InvalidArgumentError: If `sequences` and `genera` differ in length.
            InternalConsistencyError: If a label is missing from `registry`.
        """
        _check_parallel_lengths(len(sequences), len(genera))
        labeled = [
            (data, registry.index_of(genus)) for data, genus in zip(sequences, genera)
        ]
        chunks = list(chunked(labeled, self.params.chunk_size))
        counts = np.zeros((self.n_kmers, len(registry)), dtype=np.int64)

        progress_kwargs = {
            "total": len(chunks),
            "desc": "Counting k-mers",
            "disable": not self.params.show_progress,
        }
        if self.params.procs == 1 or len(chunks) <= 1:
            for chunk in tqdm(chunks, **progress_kwargs):
                counts += _count_chunk(chunk, self.kmer_size, len(registry))
        else:
            worker = partial(
                _count_chunk, kmer_size=self.kmer_size, n_genera=len(registry)
            )
            with mp.Pool(processes=self.params.procs) as pool:
                # Integer sums, so completion order cannot change the result
                for partial_counts in tqdm(
                    pool.imap_unordered(worker, chunks), **progress_kwargs
                ):
                    counts += partial_counts

        prior_counts = counts.sum(axis=1)
        return counts, prior_counts

    @staticmethod
    def estimate_priors(
        prior_counts: PriorCountVector, n_sequences: int
    ) -> np.ndarray:
        """Smoothed corpus-wide probability of each k-mer."""
        return (prior_counts.astype(np.float64) + PRIOR_PSEUDOCOUNT) / (n_sequences + 1)

    @staticmethod
    def estimate_conditional_probabilities(
        counts: CountMatrix, priors: np.ndarray, genus_counts: np.ndarray
    ) -> ProbabilityMatrix:
        """Smoothed P(k-mer | genus) from raw counts, priors and genus sizes."""
        return (counts.astype(np.float64) + priors[:, np.newaxis]) / genus_counts[
            np.newaxis, :
        ]

    def build(
        self, sequences: SequenceBatch, genera: Sequence[GenusLabel]
    ) -> KmerDatabase:
        """
        Runs both phases and the smoothing.

        Args:
            sequences: Training sequences.
            genera: Genus label of each sequence.

        Returns:
            The built `KmerDatabase`.

        Raises:
            InvalidArgumentError: If the inputs differ in length, `genera` is a
                single string, or a sequence or label has an unsupported type.
            InternalConsistencyError: If phase two meets an unregistered genus.
        """
        batch = sequence_batch_to_bytes(sequences)
        if isinstance(genera, str):
            raise InvalidArgumentError(
                "Expected a list of genus labels, got a single string."
            )
        genera = list(genera)
        _check_parallel_lengths(len(batch), len(genera))

        logger.info(
            f"Building {self.kmer_size}-mer database from {len(batch)} sequences "
            f"using {self.params.procs} process(es)."
        )
        registry = self.index_genera(genera)
        if not registry:
            logger.warning("No training sequences provided; database has no genera.")

        counts, prior_counts = self.count_kmers(batch, genera, registry)
        priors = self.estimate_priors(prior_counts, len(batch))
        conditional_probs = self.estimate_conditional_probabilities(
            counts, priors, registry.sequence_counts()
        )

        logger.info(
            f"Database built: {self.n_kmers} k-mers x {len(registry)} genera, "
            f"{int(prior_counts.sum())} k-mer occurrences counted."
        )
        return KmerDatabase(
            conditional_probs=conditional_probs,
            genera=registry.labels,
            kmer_size=self.kmer_size,
        )


def build_database(
    sequences: SequenceBatch,
    genera: Sequence[GenusLabel],
    kmer_size: int,
    procs: int = DEFAULT_NUM_PROCESSES,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    show_progress: bool = False,
) -> KmerDatabase:
    """
    Builds the genus-conditional k-mer probability database.

    Args:
        sequences: Training sequences.
        genera: Genus label of each sequence, parallel to `sequences`.
        kmer_size: K-mer length; must be in [1, MAX_KMER_SIZE].
        procs: Number of worker processes for counting.
        chunk_size: Sequences per counting task.
        show_progress: Display a tqdm progress bar.

    Returns:
        A `KmerDatabase` whose ``conditional_probs`` has shape
        (4**kmer_size, number of distinct genera) and whose ``genera`` lists
        the distinct labels in first-occurrence order.

    Raises:
        InvalidArgumentError: For out-of-range parameters or malformed input.
    """
    return KmerDatabase.build(
        sequences,
        genera,
        kmer_size,
        procs=procs,
        chunk_size=chunk_size,
        show_progress=show_progress,
    )
