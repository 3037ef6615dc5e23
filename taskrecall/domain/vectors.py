# taskrecall/domain/vectors.py

from typing import Sequence, Type, Union

import numpy as np

from .errors import InvalidInput, TaskRecallError


VectorLike = Union[np.ndarray, Sequence[float]]


def coerce_vector(
    values: VectorLike,
    dimension: int,
    error: Type[TaskRecallError] = InvalidInput,
) -> np.ndarray:
    """
    Convert `values` to a float32 vector of exactly `dimension` finite numbers.

    Raises `error` (InvalidInput by default) when the input is missing, has
    the wrong shape, or contains NaN/inf.
    """
    if values is None:
        raise error("Embedding is missing.")

    try:
        vector = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise error(f"Embedding is not numeric: {exc}") from exc

    if vector.ndim != 1 or vector.shape[0] != dimension:
        raise error(
            f"Embedding has shape {vector.shape}, expected ({dimension},)."
        )
    if not np.all(np.isfinite(vector)):
        raise error("Embedding contains non-finite values.")

    return vector
