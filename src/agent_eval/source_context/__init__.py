"""Parsed source metadata and its cache."""

from .builder import SourceContextBuilder
from .cache import ContextCache
from .parser import FileContext, Symbol, parse_source
