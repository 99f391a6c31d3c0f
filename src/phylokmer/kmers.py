"""
K-mer encoding and extraction.

A k-mer over {A, C, G, T} is encoded as the base-4 number formed by its bases
(A=0, C=1, G=2, T=3), most significant base first, so every k-mer of length k
maps to a unique index in [0, 4**k). Lowercase bases encode like uppercase.

Example:
    k = 3, window "CGC" -> 1*16 + 2*4 + 1 = 25

Windows that contain any other symbol (``N``, IUPAC ambiguity codes, gaps)
have no encoding. Extraction skips them rather than failing, since ambiguous
bases are routine in sequencing data.
"""

from itertools import product
from typing import Dict, Iterator, List

import numpy as np

from .exceptions import InvalidArgumentError, InvalidBaseError
from .genomic_types import KmerIndex, KmerIndexArray, SequenceLike
from .parameter_config import KmerParams, validate_params
from .utils import sequence_to_bytes

ALPHABET = ("A", "C", "G", "T")

# Byte value -> base-4 digit, both cases
BASE_VALUES: Dict[int, int] = {
    **{ord(base): digit for digit, base in enumerate(ALPHABET)},
    **{ord(base.lower()): digit for digit, base in enumerate(ALPHABET)},
}

# Same mapping as a lookup table for vectorized encoding; -1 marks invalid bytes.
_CODE_TABLE = np.full(256, -1, dtype=np.int8)
for _byte_val, _digit in BASE_VALUES.items():
    _CODE_TABLE[_byte_val] = _digit


def encode_window(window: SequenceLike) -> KmerIndex:
    """
    Encodes one k-mer window as its base-4 index.

    Args:
        window: The k-mer to encode. Its length is the k-mer size.

    Returns:
        An integer in [0, 4**len(window)).

    Raises:
        InvalidBaseError: If the window holds a symbol other than A, C, G or T
            (in either case).
        InvalidArgumentError: If the window is empty or of an unsupported type.
    """
    data = sequence_to_bytes(window)
    if not data:
        raise InvalidArgumentError("Cannot encode an empty window.")
    acc = 0
    for position, byte_val in enumerate(data):
        digit = BASE_VALUES.get(byte_val)
        if digit is None:
            raise InvalidBaseError(chr(byte_val), position)
        acc = acc * 4 + digit
    return acc


def decode_kmer(index: KmerIndex, kmer_size: int) -> str:
    """
    Inverse of `encode_window`: turns an index back into its uppercase k-mer.

    Raises:
        InvalidArgumentError: If `kmer_size` is out of range or `index` is not
            in [0, 4**kmer_size).
    """
    k = validate_params(KmerParams, kmer_size=kmer_size).kmer_size
    if not 0 <= index < 4**k:
        raise InvalidArgumentError(
            f"K-mer index {index} is outside [0, {4**k}) for kmer_size={k}."
        )
    bases: List[str] = []
    for _ in range(k):
        index, digit = divmod(index, 4)
        bases.append(ALPHABET[digit])
    return "".join(reversed(bases))


def all_kmers(kmer_size: int) -> List[str]:
    """Every k-mer of the given size, listed in index order."""
    k = validate_params(KmerParams, kmer_size=kmer_size).kmer_size
    # product() over an ordered alphabet enumerates in base-4 order
    return ["".join(p) for p in product(ALPHABET, repeat=k)]


def _iter_kmers(data: bytes, kmer_size: int) -> Iterator[KmerIndex]:
    sequence_view = memoryview(data)
    for start in range(len(data) - kmer_size + 1):
        try:
            yield encode_window(sequence_view[start : start + kmer_size].tobytes())
        except InvalidBaseError:
            continue


def extract_kmers(sequence: SequenceLike, kmer_size: int) -> Iterator[KmerIndex]:
    """
    Lazily encodes every window of `sequence` that is a valid k-mer.

    The window slides one position at a time from offset 0 to
    ``len(sequence) - kmer_size``. Windows with an invalid symbol are skipped,
    so a pure A/C/G/T sequence yields exactly ``len(sequence) - kmer_size + 1``
    indices and a shorter sequence yields none. Repeated k-mers are yielded
    once per occurrence.

    Arguments are validated immediately; the returned iterator is single-use
    and each call scans the sequence afresh.

    Args:
        sequence: The sequence to scan.
        kmer_size: Window width; must be in [1, MAX_KMER_SIZE].

    Returns:
        An iterator over k-mer indices in window order.

    Raises:
        InvalidArgumentError: If `kmer_size` is out of range or `sequence` is of
            an unsupported type.
    """
    k = validate_params(KmerParams, kmer_size=kmer_size).kmer_size
    return _iter_kmers(sequence_to_bytes(sequence), k)


def _kmer_index_array(data: bytes, kmer_size: int) -> KmerIndexArray:
    n_windows = len(data) - kmer_size + 1
    if n_windows <= 0:
        return np.empty(0, dtype=np.int64)

    codes = _CODE_TABLE[np.frombuffer(data, dtype=np.uint8)]
    windows = np.lib.stride_tricks.sliding_window_view(codes, window_shape=kmer_size)
    valid = (windows >= 0).all(axis=1)
    powers = 4 ** np.arange(kmer_size - 1, -1, -1, dtype=np.int64)
    return windows[valid].astype(np.int64) @ powers


def kmer_index_array(sequence: SequenceLike, kmer_size: int) -> KmerIndexArray:
    """
    Vectorized `extract_kmers`: all valid k-mer indices of a sequence at once.

    Uses a sliding-window view over per-base codes instead of a Python loop,
    which is what detection and database builds use on long sequences. The
    result equals ``list(extract_kmers(sequence, kmer_size))``.

    Args:
        sequence: The sequence to scan.
        kmer_size: Window width; must be in [1, MAX_KMER_SIZE].

    Returns:
        An int64 array of k-mer indices in window order.
    """
    k = validate_params(KmerParams, kmer_size=kmer_size).kmer_size
    return _kmer_index_array(sequence_to_bytes(sequence), k)
