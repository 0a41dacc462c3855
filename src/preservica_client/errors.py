from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"
    HTTP_ERROR = "HTTP_ERROR"
    DECODE_ERROR = "DECODE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CREDENTIALS_UNAVAILABLE = "CREDENTIALS_UNAVAILABLE"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"


class PreservicaClientError(Exception):
    """Raised for every unrecoverable failure in the client.

    HTTP failures carry the request method, url and the last observed status
    code. Decode, validation and credential failures carry a message only.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.HTTP_ERROR,
        method: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.method = method
        self.url = url
        self.status_code = status_code

    @classmethod
    def from_response(
        cls,
        method: str,
        url: str,
        status_code: int | None,
        detail: str,
        *,
        code: ErrorCode | None = None,
    ) -> PreservicaClientError:
        if code is None:
            code = (
                ErrorCode.AUTHORIZATION_FAILED
                if status_code in {401, 403}
                else ErrorCode.HTTP_ERROR
            )
        method = method.upper()
        return cls(
            f"Status code {status_code} calling {url} with method {method} {detail}",
            code=code,
            method=method,
            url=url,
            status_code=status_code,
        )

    @classmethod
    def decode(cls, message: str) -> PreservicaClientError:
        return cls(message, code=ErrorCode.DECODE_ERROR)

    @classmethod
    def validation(cls, message: str) -> PreservicaClientError:
        return cls(message, code=ErrorCode.VALIDATION_ERROR)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "method": self.method,
                "url": self.url,
                "status_code": self.status_code,
            }
        }
