"""Application error taxonomy.

Every error raised by the relay domain is an ``AppError`` carrying a stable
``errcode``, a readable ``errmesg`` and the caller context of the raise site,
so the API layer and the logs can report it without re-deriving anything.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_BIND_FAILED = "E_BIND_FAILED"
    E_SEND_FAILED = "E_SEND_FAILED"
    E_SOCKET_FAULT = "E_SOCKET_FAULT"
    E_LAUNCH_FAILED = "E_LAUNCH_FAILED"
    E_RELAY_FAILED = "E_RELAY_FAILED"
    E_CANCEL_FAILED = "E_CANCEL_FAILED"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503


class AppError(Exception):
    """Base error with an errcode, a message and the caller that raised it."""

    default_errcode: AppErrorCode = AppErrorCode.E_INTERNAL_ERROR
    default_status_code: HttpStatusCode = HttpStatusCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        errmesg: str,
        *,
        errcode: AppErrorCode | None = None,
        status_code: HttpStatusCode | None = None,
    ) -> None:
        super().__init__(errmesg)
        self.errcode = str(errcode or self.default_errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code or self.default_status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = _caller_info()

    def __str__(self) -> str:
        return self.errmesg


def _caller_info() -> str:
    # Skip this helper and the AppError.__init__ chain
    for frame_info in inspect.stack()[2:]:
        if frame_info.function != "__init__":
            module = inspect.getmodule(frame_info.frame)
            module_name = module.__name__ if module else frame_info.filename
            return f"{module_name}:{frame_info.function}:{frame_info.lineno}"
    return "unknown"


class BindError(AppError):
    """The local command port could not be bound."""

    default_errcode = AppErrorCode.E_BIND_FAILED
    default_status_code = HttpStatusCode.CONFLICT


class SendError(AppError):
    """A command datagram could not be transmitted."""

    default_errcode = AppErrorCode.E_SEND_FAILED
    default_status_code = HttpStatusCode.BAD_GATEWAY


class SocketFault(AppError):
    """Asynchronous transport-level fault on an open command channel."""

    default_errcode = AppErrorCode.E_SOCKET_FAULT
    default_status_code = HttpStatusCode.BAD_GATEWAY


class LaunchError(AppError):
    """The relay process could not be started."""

    default_errcode = AppErrorCode.E_LAUNCH_FAILED
    default_status_code = HttpStatusCode.SERVICE_UNAVAILABLE


class CancelError(AppError):
    """The relay process could not be signalled to stop."""

    default_errcode = AppErrorCode.E_CANCEL_FAILED


class RelayFailure(AppError):
    """The relay process exited unsuccessfully. ``log`` holds its full output."""

    default_errcode = AppErrorCode.E_RELAY_FAILED
    default_status_code = HttpStatusCode.BAD_GATEWAY

    def __init__(self, return_code: int | None, log: str) -> None:
        self.return_code = return_code
        self.log = log
        super().__init__(
            f"Relay process failed (exit code {return_code})\n{log or 'No logs captured.'}"
        )


__all__ = [
    "AppError",
    "AppErrorCode",
    "BindError",
    "CancelError",
    "HttpStatusCode",
    "LaunchError",
    "RelayFailure",
    "SendError",
    "SocketFault",
]
