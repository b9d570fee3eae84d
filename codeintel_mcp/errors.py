"""Error taxonomy shared by adapters, the tool executor and the protocol layer.

Every exception carries the JSON-RPC error code it is reported with. Adapters
raise these directly; ``daemon.CodeIntelDaemon`` is the only place that turns
them into JSON-RPC error objects.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    PROJECT_NOT_FOUND = -32001
    FILE_NOT_FOUND = -32002
    UNSUPPORTED_LANGUAGE = -32003
    INDEX_NOT_READY = -32004
    SYMBOL_NOT_FOUND = -32005
    INVALID_POSITION = -32006


class CodeIntelError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(CodeIntelError):
    code = ErrorCode.INVALID_REQUEST


class InvalidParamsError(CodeIntelError):
    code = ErrorCode.INVALID_PARAMS


class MethodNotFoundError(CodeIntelError):
    code = ErrorCode.METHOD_NOT_FOUND


class ProjectNotFoundError(CodeIntelError):
    code = ErrorCode.PROJECT_NOT_FOUND


class SourceFileNotFoundError(CodeIntelError):
    code = ErrorCode.FILE_NOT_FOUND


class UnsupportedLanguageError(CodeIntelError):
    code = ErrorCode.UNSUPPORTED_LANGUAGE


class IndexNotReadyError(CodeIntelError):
    code = ErrorCode.INDEX_NOT_READY


class SymbolNotFoundError(CodeIntelError):
    code = ErrorCode.SYMBOL_NOT_FOUND


class InvalidPositionError(CodeIntelError):
    code = ErrorCode.INVALID_POSITION


class BackendError(CodeIntelError):
    """A backend failed to answer a single-target query. The cause is chained."""
    code = ErrorCode.INTERNAL_ERROR
