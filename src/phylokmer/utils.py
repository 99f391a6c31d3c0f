"""
Small helpers shared across phylokmer modules.
"""

import logging
import sys
from typing import Iterable, Iterator, List, Optional, Sequence, TextIO, TypeVar

from Bio.Seq import MutableSeq, Seq, UndefinedSequenceError

from .exceptions import InvalidArgumentError
from .genomic_types import SequenceLike

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class PackageStreamHandler(logging.StreamHandler):
    """Stream handler installed by `setup_logging`; replaced on each call."""


def setup_logging(
    level: int = logging.INFO, stream: Optional[TextIO] = None
) -> logging.Logger:
    """Attaches a stream handler with the standard phylokmer format.

    The library itself never configures logging on import; applications that
    want phylokmer's log records on a stream call this once.

    Args:
        level: Logging level for the ``phylokmer`` logger. Defaults to INFO.
        stream: Stream to write to. Defaults to ``sys.stdout``.

    Returns:
        The configured ``phylokmer`` package logger.
    """
    package_logger = logging.getLogger("phylokmer")
    package_logger.setLevel(level)

    # Re-running must not duplicate output
    for handler in list(package_logger.handlers):
        if isinstance(handler, PackageStreamHandler):
            package_logger.removeHandler(handler)

    handler = PackageStreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    package_logger.addHandler(handler)
    return package_logger


def sequence_to_bytes(sequence: SequenceLike) -> bytes:
    """Converts any supported sequence representation to raw bytes.

    Strings are encoded one byte per character, with non-ASCII characters
    replaced by a placeholder so that window offsets still match character
    offsets. Biopython ``Seq``/``MutableSeq`` objects are converted through
    their bytes representation.

    Args:
        sequence: A ``str``, ``bytes``, ``bytearray`` or Biopython sequence.

    Returns:
        The sequence as bytes. Case is preserved.

    Raises:
        InvalidArgumentError: If `sequence` is of an unsupported type, or a
            Biopython sequence whose content is undefined.
    """
    if isinstance(sequence, bytes):
        return sequence
    if isinstance(sequence, str):
        # "?" is not a nucleotide, so windows covering it are dropped
        return sequence.encode("ascii", errors="replace")
    if isinstance(sequence, bytearray):
        return bytes(sequence)
    if isinstance(sequence, (Seq, MutableSeq)):
        try:
            return bytes(sequence)
        except UndefinedSequenceError as e:
            raise InvalidArgumentError(
                f"Sequence content is undefined (length {len(sequence)}): {e}"
            ) from e
    raise InvalidArgumentError(
        f"Sequence must be str, bytes, bytearray or Bio.Seq.Seq, not {type(sequence).__name__}."
    )


def chunked(items: Sequence[T], chunk_size: int) -> Iterator[List[T]]:
    """Yields consecutive slices of `items` holding at most `chunk_size` elements."""
    if chunk_size <= 0:
        raise InvalidArgumentError(f"chunk_size must be positive, got {chunk_size}.")
    for start in range(0, len(items), chunk_size):
        yield list(items[start : start + chunk_size])


def sequence_batch_to_bytes(sequences: Iterable[SequenceLike]) -> List[bytes]:
    """Converts an ordered batch of sequences with `sequence_to_bytes`.

    Raises:
        InvalidArgumentError: If `sequences` is itself a single sequence, or any
            element has an unsupported type.
    """
    # A lone string is a sequence of characters, not a batch
    if isinstance(sequences, (str, bytes, bytearray, Seq, MutableSeq)):
        raise InvalidArgumentError(
            "Expected a list of sequences, got a single sequence. Wrap it in a list."
        )
    return [sequence_to_bytes(seq) for seq in sequences]
