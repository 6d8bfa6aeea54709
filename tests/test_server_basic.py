"""
Basic tests for the completion language server.

These tests verify that the server can be created and has the expected features registered.
"""

from lsprotocol.types import (
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DID_SAVE,
)

from completionls.lsp.server import ADD_LIBRARIES, INVALIDATE_CACHES, create_server


def test_server_creation():
    """Test that the server can be created successfully."""
    server = create_server()
    assert server is not None
    assert server.name == "completionls"
    assert server.version == "0.1.0"


def test_server_has_completion_feature():
    """Test that completion feature is registered."""
    server = create_server()

    assert TEXT_DOCUMENT_COMPLETION in server.protocol.fm._features


def test_server_has_did_save_feature():
    """Test that the save hook handler is registered."""
    server = create_server()

    assert TEXT_DOCUMENT_DID_SAVE in server.protocol.fm._features


def test_server_has_commands():
    """Test that the cache commands are registered."""
    server = create_server()

    assert INVALIDATE_CACHES in server.protocol.fm.commands
    assert ADD_LIBRARIES in server.protocol.fm.commands


def test_server_has_default_engines():
    """Test that engines are available before initialize."""
    server = create_server()

    assert server.registry.supported_languages() == frozenset(
        {"python", "py", "sql", "javascript", "js"}
    )
    assert server.text_sync_manager is not None
