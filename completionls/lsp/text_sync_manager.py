"""
Text Synchronization Manager

Provides save hooks so the completion caches can react to files changing
on disk (a library module edited, the settings file rewritten).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_SAVE,
    DidSaveTextDocumentParams,
    LogMessageParams,
    MessageType,
)

if TYPE_CHECKING:
    from completionls.lsp.completion_language_server import CompletionLanguageServer


OnSaveHook = Callable[[DidSaveTextDocumentParams], Awaitable[None]]


class TextSyncManager:
    """
    Broadcasts document save events to registered hooks.

    Hooks run in registration order; a failing hook is reported to the
    client and does not stop the others.

    Usage:
        text_sync = TextSyncManager(server)
        text_sync.register_handlers()
        text_sync.add_on_save_hook(invalidate_if_library_file)
    """

    def __init__(self, server: CompletionLanguageServer) -> None:
        self.server = server
        self._on_save_hooks: list[OnSaveHook] = []

    def add_on_save_hook(self, hook: OnSaveHook) -> None:
        """
        Register a hook for document save events.

        Args:
            hook: Async function taking DidSaveTextDocumentParams
        """
        self._on_save_hooks.append(hook)

    async def _broadcast_on_save(self, params: DidSaveTextDocumentParams) -> None:
        for hook in self._on_save_hooks:
            try:
                await hook(params)
            except Exception as e:
                self.server.window_log_message(
                    LogMessageParams(
                        type=MessageType.Error,
                        message=f"Error in on_save hook {hook.__name__}: "
                                f"{type(e).__name__}: {e}"
                    )
                )

    def register_handlers(self) -> None:
        """Register the textDocument/didSave handler with the server."""

        @self.server.feature(TEXT_DOCUMENT_DID_SAVE)
        async def did_save(
            ls: CompletionLanguageServer,
            params: DidSaveTextDocumentParams,
        ) -> None:
            await self._broadcast_on_save(params)
