"""Table extractors for the supported sources."""

from .base import BaseExtractor
from .json_extractor import StagedJsonExtractor
from .supabase_extractor import SupabaseExtractor

__all__ = [
    "BaseExtractor",
    "StagedJsonExtractor",
    "SupabaseExtractor",
]
