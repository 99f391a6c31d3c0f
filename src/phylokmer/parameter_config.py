"""
Parameter models for phylokmer operations.

Every public operation funnels its tuning knobs through these pydantic models,
so range checks live in one place and produce uniform error messages.
"""

import numbers
from typing import Any, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import InvalidArgumentError

# 4**15 still fits a signed 32-bit index; beyond that a dense matrix is unusable.
MAX_KMER_SIZE = 15
DEFAULT_KMER_SIZE = 8
DEFAULT_NUM_PROCESSES = 1
DEFAULT_CHUNK_SIZE = 1000

ParamsT = TypeVar("ParamsT", bound=BaseModel)


class KmerParams(BaseModel):
    """Validated k-mer size shared by extraction, detection and database builds."""

    kmer_size: int = Field(
        DEFAULT_KMER_SIZE,
        description="Length of k-mers; matrices get 4**kmer_size rows.",
        gt=0,
        le=MAX_KMER_SIZE,
    )

    @field_validator("kmer_size", mode="before")
    @classmethod
    def coerce_integral(cls, v: Any) -> int:
        """Accepts Python and NumPy integers, rejects bools, floats and strings."""
        if isinstance(v, bool) or not isinstance(v, numbers.Integral):
            raise ValueError(f"kmer_size must be an integer, got {type(v).__name__}")
        return int(v)


class BuildParams(KmerParams):
    """Parameters for batch operations (detection and database builds)."""

    procs: int = Field(
        DEFAULT_NUM_PROCESSES,
        description="Number of worker processes; 1 runs in the calling process.",
        gt=0,
    )
    chunk_size: int = Field(
        DEFAULT_CHUNK_SIZE,
        description="Number of sequences handed to a worker at a time.",
        gt=0,
    )
    show_progress: bool = Field(False, description="Display a tqdm progress bar.")


def validate_params(model: Type[ParamsT], **values: Any) -> ParamsT:
    """
    Instantiates a parameter model, converting validation failures.

    Args:
        model: The pydantic model class to instantiate.
        **values: Field values.

    Returns:
        The validated model instance.

    Raises:
        InvalidArgumentError: If any field fails validation. The message lists
            every offending field with pydantic's explanation.
    """
    try:
        return model(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidArgumentError(f"Invalid parameters: {problems}") from e
