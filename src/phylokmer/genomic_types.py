"""
Type definitions for the phylokmer package.

This module centralizes common type aliases used throughout phylokmer
to keep signatures consistent and readable.
"""

from typing import List, Sequence, Union

import numpy as np
import numpy.typing as npt
from Bio.Seq import Seq

# Type aliases for clarity
SequenceLike = Union[str, bytes, bytearray, Seq]  # Anything accepted as a nucleotide sequence.
KmerIndex = int  # Base-4 encoding of a k-mer, in [0, 4**k).
GenusLabel = str  # Opaque taxonomic label attached to a training sequence.
GenusIndex = int  # Position of a genus label in first-occurrence order.
SequenceBatch = Sequence[SequenceLike]  # An ordered batch of sequences.
GenusLabels = List[GenusLabel]  # Distinct genus labels in first-occurrence order.
KmerIndexArray = npt.NDArray[np.int64]  # Encoded k-mers of one sequence, in window order.
CountMatrix = npt.NDArray[np.int64]  # Raw k-mer occurrence counts, shape (4**k, n_genera).
PriorCountVector = npt.NDArray[np.int64]  # Corpus-wide k-mer occurrence counts, shape (4**k,).
ProbabilityMatrix = npt.NDArray[
    np.float64
]  # Genus-conditional k-mer probabilities, shape (4**k, n_genera).
DetectionVector = npt.NDArray[np.bool_]  # Presence flags of every k-mer in one sequence.
DetectionMatrix = npt.NDArray[
    np.bool_
]  # Presence flags, shape (4**k, n_sequences); columns follow input order.
