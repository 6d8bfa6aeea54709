"""Forwards ``logging`` records from the completion core to the client."""

from __future__ import annotations

import logging

from lsprotocol.types import LogMessageParams, MessageType
from pygls.lsp.server import LanguageServer

_MESSAGE_TYPES = (
    (logging.ERROR, MessageType.Error),
    (logging.WARNING, MessageType.Warning),
    (logging.INFO, MessageType.Info),
)


def message_type_for(levelno: int) -> MessageType:
    for level, message_type in _MESSAGE_TYPES:
        if levelno >= level:
            return message_type
    return MessageType.Log


class LanguageServerLogHandler(logging.Handler):
    """Sends each record as a window/logMessage notification."""

    def __init__(self, server: LanguageServer, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.server = server
        self.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.server.window_log_message(
                LogMessageParams(message_type_for(record.levelno), self.format(record))
            )
        except Exception:
            self.handleError(record)
