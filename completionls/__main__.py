"""
Main entry point for the completion language server.

This file is executed when running: python -m completionls

The server communicates with editors via stdin/stdout using JSON-RPC.
"""
import os

from completionls.lsp.server import create_server
from completionls.utils.logging import setup_logging


def main():
    """Start the language server on stdin/stdout."""
    setup_logging(debug=bool(os.getenv("DEBUG")))

    server = create_server()

    # Start the server - it will listen on stdin/stdout for LSP messages
    # from the editor client
    server.start_io()


if __name__ == "__main__":
    main()
