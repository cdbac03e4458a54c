"""Delimiter compilation and stream tokenization."""

from .delimiter import compile_delimiter
from .source import MemorySource, open_source
from .tokenizer import DelimitedTokenizer

__all__ = ["compile_delimiter", "DelimitedTokenizer", "MemorySource", "open_source"]
