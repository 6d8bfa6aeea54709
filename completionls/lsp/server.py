from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from lsprotocol.types import (
    INITIALIZE,
    TEXT_DOCUMENT_COMPLETION,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    DidSaveTextDocumentParams,
    InitializeParams,
    LogMessageParams,
    MessageType,
)
from pygls.uris import to_fs_path

from completionls.completion.context import CompletionContext
from completionls.completion.registry import CompletionRegistry
from completionls.engines.sql_schema import (
    ConnectionIntrospector,
    SchemaIntrospector,
    StaticSchemaIntrospector,
)
from completionls.lsp.completion_language_server import CompletionLanguageServer
from completionls.lsp.log_handler import LanguageServerLogHandler
from completionls.lsp.text_sync_manager import TextSyncManager
from completionls.settings import SETTINGS_FILE, CompletionSettings, workspace_settings
from completionls.workspace.resolution import ResolutionContext, default_context
from completionls.workspace.symbol_index import SymbolIndexCache

logger = logging.getLogger(__name__)

INVALIDATE_CACHES = "completionls.invalidateCaches"
ADD_LIBRARIES = "completionls.addLibraries"

EXTENSION_LANGUAGES = {
    ".py": "python",
    ".pyi": "python",
    ".sql": "sql",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}


def language_for(registry: CompletionRegistry, language_id: str | None, path: str) -> str | None:
    """Registered language of a document, by language id then extension."""
    if language_id and registry.has_engine(language_id):
        return language_id.lower()
    return EXTENSION_LANGUAGES.get(Path(path).suffix.lower(), language_id)


def load_schema(workspace_root: Path | None, options: Mapping[str, Any]) -> SchemaIntrospector | None:
    """Schema source named by the ``database`` or ``schemaFile`` option."""
    database = options.get("database")
    if database:
        path = _workspace_path(workspace_root, database)
        try:
            # Read-only; completion requests run off the event loop thread
            connection = sqlite3.connect(
                f"{path.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False
            )
        except sqlite3.Error as e:
            logger.warning("Cannot open schema database %s: %s", path, e)
            return None
        return ConnectionIntrospector(connection)

    schema_file = options.get("schemaFile")
    if schema_file:
        return StaticSchemaIntrospector.from_yaml(_workspace_path(workspace_root, schema_file))
    return None


def _workspace_path(workspace_root: Path | None, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute() and workspace_root is not None:
        path = workspace_root / path
    return path


def configure(
    ls: CompletionLanguageServer,
    workspace_root: Path | None,
    options: Mapping[str, Any] | None,
) -> None:
    """(Re)build settings, caches, engines and the resolution context."""
    options = options or {}

    if options.get("settings"):
        settings = CompletionSettings.from_mapping(options["settings"])
    elif workspace_root is not None:
        settings = workspace_settings(workspace_root)
    else:
        settings = CompletionSettings()

    roots = [workspace_root] if workspace_root is not None else []
    roots += [_workspace_path(workspace_root, r) for r in options.get("libraryRoots") or ()]
    parent = default_context() if options.get("includeSystemPath", True) else None

    symbol_index = SymbolIndexCache(settings)
    registry = CompletionRegistry(symbol_index)
    registry.register_defaults(schema=load_schema(workspace_root, options), settings=settings)

    ls.settings = settings
    ls.symbol_index = symbol_index
    ls.registry = registry
    ls.resolution_context = ResolutionContext(roots, parent=parent, name="workspace")


def create_server() -> CompletionLanguageServer:
    """
    Creates and returns a configured Language Server instance.

    The LanguageServer class from pygls handles:
    - JSON-RPC communication with clients (editors)
    - Request/response lifecycle
    - Notifications and event handling
    """
    server = CompletionLanguageServer("completionls", "0.1.0")
    server.registry.register_defaults(settings=server.settings)
    log_handler = LanguageServerLogHandler(server)

    server.text_sync_manager = TextSyncManager(server)
    server.text_sync_manager.register_handlers()

    @server.feature(INITIALIZE)
    def initialize(ls: CompletionLanguageServer, params: InitializeParams):
        """Load workspace settings and set up the completion engines."""
        workspace_root = None
        if params.root_uri:
            workspace_root = Path(to_fs_path(params.root_uri))
        elif params.root_path:
            workspace_root = Path(params.root_path)

        options = params.initialization_options
        if not isinstance(options, Mapping):
            options = {}

        core_logger = logging.getLogger("completionls")
        if log_handler not in core_logger.handlers:
            core_logger.addHandler(log_handler)

        ls.workspace_root = workspace_root
        ls.initialization_options = dict(options)
        try:
            configure(ls, workspace_root, options)
        except Exception as e:
            ls.window_log_message(
                LogMessageParams(MessageType.Error, f"Completion setup failed: {e}")
            )
            return

        languages = ", ".join(sorted(ls.registry.supported_languages()))
        ls.window_log_message(
            LogMessageParams(MessageType.Info, f"Completion engines ready: {languages}")
        )

    @server.feature(
        TEXT_DOCUMENT_COMPLETION, CompletionOptions(trigger_characters=["."])
    )
    async def completion(ls: CompletionLanguageServer, params: CompletionParams):
        document = ls.workspace.get_text_document(params.text_document.uri)
        language = language_for(ls.registry, document.language_id, document.path)

        context = (
            CompletionContext.builder()
            .full_text(document.source)
            .caret_position(document.offset_at_position(params.position))
            .language(language)
            .resolution_context(ls.resolution_context)
            .metadata_value("uri", params.text_document.uri)
            .build()
        )

        # Index scans touch the filesystem
        items = await asyncio.to_thread(ls.registry.complete, language, context)
        return CompletionList(
            is_incomplete=False,
            items=[item.to_lsp(rank) for rank, item in enumerate(items)],
        )

    @server.command(INVALIDATE_CACHES)
    def invalidate_caches(ls: CompletionLanguageServer, *args):
        ls.registry.invalidate_all()
        ls.window_log_message(LogMessageParams(MessageType.Info, "Completion caches cleared"))

    @server.command(ADD_LIBRARIES)
    def add_libraries(ls: CompletionLanguageServer, *paths: str):
        """Merge libraries into the class index without rescanning the workspace."""
        ctx = ls.resolution_context or default_context()
        ls.symbol_index.add_libraries(ctx, [Path(p).expanduser() for p in paths])
        ls.window_log_message(
            LogMessageParams(MessageType.Info, f"Added {len(paths)} libraries")
        )
        return len(ls.symbol_index.attached_roots(ctx))

    async def refresh_on_save(params: DidSaveTextDocumentParams) -> None:
        """Reload settings or drop stale caches when a watched file is saved."""
        path = to_fs_path(params.text_document.uri)
        if not path:
            return
        if Path(path).as_posix().endswith(SETTINGS_FILE.as_posix()):
            configure(server, server.workspace_root, server.initialization_options)
            return
        if path.endswith(".py") and server.resolution_context is not None:
            if any(Path(path).is_relative_to(root) for root in server.resolution_context.roots):
                server.registry.invalidate_all()

    server.text_sync_manager.add_on_save_hook(refresh_on_save)

    return server

