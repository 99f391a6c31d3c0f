"""
Pytest unit tests for GenusRegistry, DatabaseBuilder and KmerDatabase
in phylokmer.database.
"""

import logging
from typing import List
from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest
from Bio.Seq import Seq

from phylokmer.database import (
    DatabaseBuilder,
    _count_chunk,
    GenusRegistry,
    KmerDatabase,
    build_database,
)
from phylokmer.exceptions import InternalConsistencyError, InvalidArgumentError
from phylokmer.kmers import encode_window

# --- Tests for GenusRegistry ---


def test_registry_first_occurrence_order():
    registry = GenusRegistry.from_labels(["Genus1", "Genus2", "Genus2", "Genus3"])
    assert registry.labels == ["Genus1", "Genus2", "Genus3"]
    assert list(registry) == ["Genus1", "Genus2", "Genus3"]
    assert len(registry) == 3


def test_registry_order_is_not_sorted():
    registry = GenusRegistry.from_labels(["Zeta", "alpha", "Mu", "alpha", "Zeta"])
    assert registry.labels == ["Zeta", "alpha", "Mu"]
    assert registry.index_of("Mu") == 2


def test_registry_sequence_counts_include_pseudocount():
    registry = GenusRegistry.from_labels(["Genus1", "Genus2", "Genus2", "Genus3"])
    counts = registry.sequence_counts()
    assert counts.dtype == np.float64
    assert counts.tolist() == [2.0, 3.0, 2.0]


def test_registry_register_returns_index():
    registry = GenusRegistry()
    assert registry.register("B") == 0
    assert registry.register("A") == 1
    assert registry.register("B") == 0
    assert "A" in registry
    assert "C" not in registry


def test_registry_unknown_genus_is_internal_error():
    registry = GenusRegistry.from_labels(["Genus1"])
    with pytest.raises(InternalConsistencyError, match="'Genus9' is missing"):
        registry.index_of("Genus9")


def test_registry_rejects_non_string_labels():
    with pytest.raises(InvalidArgumentError, match="Genus labels must be strings"):
        GenusRegistry.from_labels(["Genus1", 7])  # type: ignore


# --- Tests for build_database ---


def test_build_database_reference_values(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
    reference_kmer_size: int,
):
    db = build_database(
        reference_sequences_fixture, reference_genera_fixture, reference_kmer_size
    )
    assert db.genera == ["Genus1", "Genus2"]
    assert db.conditional_probs.shape == (64, 2)
    assert db.conditional_probs.dtype == np.float64
    p = db.conditional_probs
    # CGC: in every sequence
    np.testing.assert_allclose(p[25], [0.9375000, 0.9583333], atol=1e-6)
    # CTA: only in Genus1
    np.testing.assert_allclose(p[28], [0.6875, 0.1250], atol=1e-6)
    # CTC: only in Genus2
    np.testing.assert_allclose(p[29], [0.3125, 0.8750], atol=1e-6)
    # TTT: nowhere
    np.testing.assert_allclose(p[63], [0.06250000, 0.04166667], atol=1e-6)


def test_build_database_probabilities_in_unit_interval(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
    reference_kmer_size: int,
):
    db = build_database(
        reference_sequences_fixture, reference_genera_fixture, reference_kmer_size
    )
    assert (db.conditional_probs > 0).all()
    assert (db.conditional_probs <= 1).all()


def test_build_database_strictly_positive_with_ambiguous_input():
    sequences = ["ACGTNNNNACGT", "NNNN", "", "ggccaattACGT", "A"]
    genera = ["G1", "G2", "G2", "G3", "G1"]
    db = build_database(sequences, genera, 2)
    assert (db.conditional_probs > 0).all()


def test_build_database_genera_first_occurrence_order():
    db = build_database(
        ["ACGT", "CGTA", "GTAC", "TACG"], ["Genus1", "Genus2", "Genus2", "Genus3"], 2
    )
    assert db.genera == ["Genus1", "Genus2", "Genus3"]
    assert db.num_genera == 3


def test_build_database_counts_every_occurrence():
    # AA occurs three times in one sequence: (3 + (3 + 0.5) / 2) / 2
    db = build_database(["AAAA"], ["Only"], 2)
    assert db.conditional_probs[encode_window("AA"), 0] == pytest.approx(2.375)
    # Absent k-mers fall back to the prior alone: (0.5 / 2) / 2
    assert db.conditional_probs[encode_window("CC"), 0] == pytest.approx(0.125)


def test_build_database_sequence_without_kmers_adds_no_counts():
    db = build_database(["NNNN", "ACG"], ["Empty", "Full"], 3)
    priors = np.full(64, 0.5 / 3)
    priors[encode_window("ACG")] = 1.5 / 3
    # Empty genus has no counts: probability is prior / (1 + 1)
    np.testing.assert_allclose(db.conditional_probs[:, 0], priors / 2)
    assert db.conditional_probs[encode_window("ACG"), 1] == pytest.approx((1 + 0.5) / 2)


def test_build_database_is_idempotent(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    first = build_database(reference_sequences_fixture, reference_genera_fixture, 4)
    second = build_database(reference_sequences_fixture, reference_genera_fixture, 4)
    assert first.genera == second.genera
    assert first.conditional_probs.tobytes() == second.conditional_probs.tobytes()


def test_build_database_parallel_is_bit_identical(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    sequences = reference_sequences_fixture * 4 + ["GGGTTTNACG", "tgcatgca"]
    genera = reference_genera_fixture * 4 + ["Genus3", "Genus1"]
    serial = build_database(sequences, genera, 3)
    parallel = build_database(sequences, genera, 3, procs=2, chunk_size=3)
    assert parallel.genera == serial.genera
    assert parallel.conditional_probs.tobytes() == serial.conditional_probs.tobytes()


def test_build_database_serial_path_does_not_start_pool(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    with patch("phylokmer.database.mp.Pool") as mock_pool:
        build_database(reference_sequences_fixture, reference_genera_fixture, 3)
    mock_pool.assert_not_called()


def test_build_database_accepts_bytes_and_biopython_seq(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    expected = build_database(reference_sequences_fixture, reference_genera_fixture, 3)
    mixed = [
        reference_sequences_fixture[0].encode("ascii"),
        Seq(reference_sequences_fixture[1]),
        reference_sequences_fixture[2].lower(),
    ]
    result = build_database(mixed, reference_genera_fixture, 3)
    np.testing.assert_array_equal(result.conditional_probs, expected.conditional_probs)


def test_build_database_empty_corpus():
    db = build_database([], [], 2)
    assert db.conditional_probs.shape == (16, 0)
    assert db.genera == []


def test_build_database_length_mismatch(reference_sequences_fixture: List[str]):
    with pytest.raises(
        InvalidArgumentError,
        match=r"Number of sequences \(3\) does not match number of genus labels \(2\)",
    ):
        build_database(reference_sequences_fixture, ["Genus1", "Genus2"], 3)


@pytest.mark.parametrize("invalid_kmer_size", [0, -1, 16])
def test_build_database_invalid_kmer_size(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
    invalid_kmer_size: int,
):
    with pytest.raises(InvalidArgumentError):
        build_database(
            reference_sequences_fixture, reference_genera_fixture, invalid_kmer_size
        )


def test_build_database_rejects_single_string_genera():
    with pytest.raises(InvalidArgumentError, match="single string"):
        build_database(["ACGT", "ACGT"], "G1", 2)  # type: ignore


def test_build_database_logs_summary(
    caplog: pytest.LogCaptureFixture,
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    with caplog.at_level(logging.INFO, logger="phylokmer"):
        build_database(reference_sequences_fixture, reference_genera_fixture, 3)
    assert "Building 3-mer database from 3 sequences" in caplog.text
    assert "64 k-mers x 2 genera, 18 k-mer occurrences counted" in caplog.text


# --- Tests for DatabaseBuilder phases ---


def test_builder_count_kmers(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    builder = DatabaseBuilder(3)
    registry = builder.index_genera(reference_genera_fixture)
    data = [seq.encode("ascii") for seq in reference_sequences_fixture]
    counts, prior_counts = builder.count_kmers(data, reference_genera_fixture, registry)
    assert counts.shape == (64, 2)
    assert counts[encode_window("CGC")].tolist() == [1, 2]
    assert counts[encode_window("CTA")].tolist() == [1, 0]
    assert prior_counts[encode_window("CGC")] == 3
    np.testing.assert_array_equal(prior_counts, counts.sum(axis=1))


def test_builder_count_kmers_with_mismatched_registry(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    builder = DatabaseBuilder(3)
    registry = builder.index_genera(["Genus1"])
    data = [seq.encode("ascii") for seq in reference_sequences_fixture]
    with pytest.raises(InternalConsistencyError, match="'Genus2' is missing"):
        builder.count_kmers(data, reference_genera_fixture, registry)


def test_builder_count_kmers_length_mismatch():
    builder = DatabaseBuilder(2)
    registry = builder.index_genera(["G1", "G2"])
    with pytest.raises(
        InvalidArgumentError,
        match=r"Number of sequences \(3\) does not match number of genus labels \(2\)",
    ):
        builder.count_kmers([b"ACGT", b"AAAA", b"CCCC"], ["G1", "G2"], registry)


def test_count_chunk_matches_per_occurrence_count():
    chunk = [
        (b"ACGTACGTAC", 0),
        (b"AAAAANAAAA", 2),
        (b"ggtaccNN", 1),
        (b"ACGTACGTAC", 2),
        (b"", 1),
    ]
    expected = np.zeros((64, 3), dtype=np.int64)
    for data, genus_idx in chunk:
        for start in range(len(data) - 3 + 1):
            window = data[start : start + 3]
            if b"N" not in window:
                expected[encode_window(window), genus_idx] += 1
    np.testing.assert_array_equal(_count_chunk(chunk, 3, 3), expected)


def test_count_chunk_single_pass_for_many_sequences():
    chunk = [(b"ACGTACGTACGTACGTACGT", 0)] * 200
    with patch("phylokmer.database.np.bincount", wraps=np.bincount) as mock_bincount:
        counts = _count_chunk(chunk, 10, 1)
    # One dense tally for the whole chunk, not one per sequence
    assert mock_bincount.call_count == 1
    assert counts.shape == (4**10, 1)
    assert counts.dtype == np.int64
    assert counts.sum() == 200 * (20 - 10 + 1)
    assert counts[encode_window("ACGTACGTAC"), 0] == 200 * 3


def test_count_chunk_empty():
    counts = _count_chunk([], 2, 3)
    assert counts.shape == (16, 3)
    assert not counts.any()


def test_builder_estimate_priors():
    priors = DatabaseBuilder.estimate_priors(np.array([0, 1, 3]), n_sequences=3)
    np.testing.assert_allclose(priors, [0.125, 0.375, 0.875])


def test_builder_estimate_conditional_probabilities():
    counts = np.array([[1, 2], [0, 0]])
    priors = np.array([0.875, 0.125])
    genus_counts = np.array([2.0, 3.0])
    probs = DatabaseBuilder.estimate_conditional_probabilities(counts, priors, genus_counts)
    np.testing.assert_allclose(probs, [[0.9375, 2.875 / 3], [0.0625, 0.125 / 3]])


def test_builder_invalid_procs():
    with pytest.raises(InvalidArgumentError, match="procs"):
        DatabaseBuilder(3, procs=0)


# --- Tests for KmerDatabase ---


@pytest.fixture
def reference_db_fixture(
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
    reference_kmer_size: int,
) -> KmerDatabase:
    return KmerDatabase.build(
        reference_sequences_fixture, reference_genera_fixture, reference_kmer_size
    )


def test_kmer_database_build_matches_function(
    reference_db_fixture: KmerDatabase,
    reference_sequences_fixture: List[str],
    reference_genera_fixture: List[str],
):
    db = build_database(reference_sequences_fixture, reference_genera_fixture, 3)
    np.testing.assert_array_equal(db.conditional_probs, reference_db_fixture.conditional_probs)
    assert reference_db_fixture.kmer_size == 3
    assert reference_db_fixture.num_kmers == 64


def test_kmer_database_genus_lookup(reference_db_fixture: KmerDatabase):
    assert reference_db_fixture.genus_index("Genus2") == 1
    column = reference_db_fixture.genus_probabilities("Genus1")
    assert column.shape == (64,)
    assert column[25] == pytest.approx(0.9375)
    with pytest.raises(KeyError, match="not in the database"):
        reference_db_fixture.genus_index("Genus42")


def test_kmer_database_to_dataframe(reference_db_fixture: KmerDatabase):
    df = reference_db_fixture.to_dataframe()
    assert isinstance(df, pd.DataFrame)
    assert df.shape == (64, 2)
    assert list(df.columns) == ["Genus1", "Genus2"]
    assert df.index[0] == "AAA"
    assert df.index[-1] == "TTT"
    assert df.loc["CTA", "Genus1"] == pytest.approx(0.6875)
    assert df.loc["CTC", "Genus2"] == pytest.approx(0.875)
