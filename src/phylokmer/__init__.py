"""
phylokmer: genus-conditional k-mer databases for Naive-Bayes sequence classification.

This package encodes nucleotide k-mers as base-4 integers, builds presence/absence
matrices of k-mers across sequences, and builds the smoothed table of
P(k-mer present | genus) that RDP-style classifiers score sequences against.
"""

__version__ = "0.1.0"

from .database import DatabaseBuilder, GenusRegistry, KmerDatabase, build_database
from .detection import detect_kmers, detect_kmers_across_sequences, detection_to_dataframe
from .exceptions import (
    InternalConsistencyError,
    InvalidArgumentError,
    InvalidBaseError,
    PhylokmerError,
)
from .kmers import all_kmers, decode_kmer, encode_window, extract_kmers, kmer_index_array
from .parameter_config import MAX_KMER_SIZE, BuildParams, KmerParams
from .utils import setup_logging

__all__ = [
    "build_database",
    "DatabaseBuilder",
    "GenusRegistry",
    "KmerDatabase",
    "detect_kmers",
    "detect_kmers_across_sequences",
    "detection_to_dataframe",
    "encode_window",
    "decode_kmer",
    "extract_kmers",
    "kmer_index_array",
    "all_kmers",
    "BuildParams",
    "KmerParams",
    "MAX_KMER_SIZE",
    "PhylokmerError",
    "InvalidArgumentError",
    "InvalidBaseError",
    "InternalConsistencyError",
    "setup_logging",
    "__version__",
]
