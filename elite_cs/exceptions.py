"""Exception type raised by the SDK."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Reason codes carried by :class:`EliteException`."""

    SUCCESS = "success"
    SOCKET_CONNECT_FAIL = "connect fail"
    SOCKET_FAIL = "socket communicate error"
    RTSI_UNKNOW_VARIABLE_TYPE = "RTSI receive unknown data type"
    RTSI_RECIPE_PARSER_FAIL = "RTSI recipe parser fail"
    ILLEGAL_PARAM = "illegal parameter"
    DASHBOARD_NOT_EXPECT_RECIVE = "dashboard did not receive the expected response"
    FILE_OPEN_FAIL = "open file fail"
    TCP_SERVER_CONTEXT_NULL = "tcp server context is null"

    @property
    def description(self) -> str:
        return self.value


class EliteException(RuntimeError):
    """Error raised by the SDK, tagged with an :class:`ErrorCode`."""

    def __init__(self, code: ErrorCode, addition: str | None = None) -> None:
        self.code = ErrorCode(code)
        self.addition = addition
        if addition is None:
            message = self.code.description
        else:
            message = f"{self.code.description}: {addition}"
        super().__init__(message)

    def __bool__(self) -> bool:
        return self.code is not ErrorCode.SUCCESS

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.code is other
        return NotImplemented

    __hash__ = RuntimeError.__hash__