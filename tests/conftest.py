import logging
from typing import List

import pytest


@pytest.fixture
def reference_sequences_fixture() -> List[str]:
    """Three short training sequences; the last two are identical."""
    return ["ATGCGCTA", "ATGCGCTC", "ATGCGCTC"]


@pytest.fixture
def reference_genera_fixture() -> List[str]:
    return ["Genus1", "Genus2", "Genus2"]


@pytest.fixture
def reference_kmer_size() -> int:
    return 3


@pytest.fixture
def restore_package_logger():
    """Undoes handler and level changes made to the ``phylokmer`` logger."""
    package_logger = logging.getLogger("phylokmer")
    saved_handlers = list(package_logger.handlers)
    saved_level = package_logger.level
    yield package_logger
    package_logger.handlers = saved_handlers
    package_logger.setLevel(saved_level)
