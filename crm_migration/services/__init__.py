"""Service layer for the migration engine."""

from .staging import StagingArea
from .transformer import ConversionRule, FieldTransformer
from .verifier import Verifier

__all__ = [
    "StagingArea",
    "ConversionRule",
    "FieldTransformer",
    "Verifier",
]
