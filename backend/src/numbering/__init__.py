"""Document numbering from per-tenant number sequences"""

from .service import (
    DEFAULT_SEQUENCES,
    NumberSequenceError,
    create_default_sequences,
    format_number,
    generate_number,
)

__all__ = [
    "DEFAULT_SEQUENCES",
    "NumberSequenceError",
    "create_default_sequences",
    "format_number",
    "generate_number",
]
