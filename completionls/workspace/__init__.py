"""Library resolution and symbol indexing for completionls."""
from .resolution import ResolutionContext, current_context, use_context
from .symbol_index import SymbolIndexCache

__all__ = ['ResolutionContext', 'SymbolIndexCache', 'current_context', 'use_context']
