"""
Error models.

ErrorModel is the immutable rate table; seeds provide round-0 tables;
estimate re-fits rates from denoised partitions.
"""

from .base import ErrorModel
from .seeds import nominal_error_model, noiseless_error_model, uniform_error_model
from .estimate import accumulate_transitions, count_transitions, estimate_error_model
from ...utils.config import MAX_QUALITY


def get_error_model(name: str, max_q: int = MAX_QUALITY, **kwargs) -> ErrorModel:
    """
    Seed error model by name.

    Args:
        name: Seed name (nominal, uniform, noiseless)
        max_q: Highest quality column
        **kwargs: Passed to the seed builder

    Returns:
        ErrorModel instance
    """
    models = {
        "nominal": nominal_error_model,
        "uniform": uniform_error_model,
        "noiseless": noiseless_error_model,
    }

    if name not in models:
        raise ValueError(f"Unknown error model: {name}. Available: {list(models.keys())}")

    return models[name](max_q=max_q, **kwargs)


__all__ = [
    "ErrorModel",
    "nominal_error_model",
    "uniform_error_model",
    "noiseless_error_model",
    "count_transitions",
    "accumulate_transitions",
    "estimate_error_model",
    "get_error_model",
]
