"""Completion request model, engine interface and registry."""
from .context import CompletionContext
from .engine import CompletionEngine
from .item import CompletionItem, CompletionKind
from .registry import CompletionRegistry

__all__ = [
    'CompletionContext',
    'CompletionEngine',
    'CompletionItem',
    'CompletionKind',
    'CompletionRegistry',
]
