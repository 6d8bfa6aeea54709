from __future__ import annotations

from pathlib import Path
from typing import Any

from pygls.lsp.server import LanguageServer

from completionls.completion.registry import CompletionRegistry
from completionls.lsp.text_sync_manager import TextSyncManager
from completionls.settings import CompletionSettings
from completionls.workspace.resolution import ResolutionContext
from completionls.workspace.symbol_index import SymbolIndexCache


class CompletionLanguageServer(LanguageServer):
    """
    Language server with completion-specific attributes.

    Attributes:
        settings: Settings loaded from the workspace
        symbol_index: Class name index shared by the engines
        registry: Language -> completion engine directory
        resolution_context: Library roots of the open workspace
        workspace_root: Root folder sent by the client
        initialization_options: Options sent with initialize, kept for reloads
        text_sync_manager: Save hooks that keep the caches current
    """

    def __init__(self, name: str, version: str):
        super().__init__(name, version)

        self.settings = CompletionSettings()
        self.symbol_index = SymbolIndexCache(self.settings)
        self.registry = CompletionRegistry(self.symbol_index)
        self.resolution_context: ResolutionContext | None = None
        self.workspace_root: Path | None = None
        self.initialization_options: dict[str, Any] = {}
        self.text_sync_manager: TextSyncManager | None = None
