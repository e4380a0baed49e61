# src/async_model_resources/base/responses.py
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .exceptions import ResponseAlreadySentError, ValidationErrorException

log = logging.getLogger(__name__)

UNDEFINED_CODE = "undefined"
UNEXPECTED_FAILURE_MESSAGE = "Unexpected failure"


class ErrorMessage(BaseModel):
    """Body of an error response."""

    code: str
    message: str


@dataclass(frozen=True)
class OperationResponse:
    """The outcome of an operation: a status code and an optional body."""

    status_code: int
    payload: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def error_message_for(cause: Optional[BaseException]) -> ErrorMessage:
    """
    Describe a failure cause as an error body.

    A ValidationErrorException reports its own code and message, any other
    exception its class name and message, and a missing cause falls back to
    'undefined' / 'Unexpected failure'.
    """
    if isinstance(cause, ValidationErrorException):
        return ErrorMessage(code=cause.code, message=cause.message)
    if cause is not None:
        message = str(cause) or UNEXPECTED_FAILURE_MESSAGE
        return ErrorMessage(code=type(cause).__name__, message=message)
    return ErrorMessage(code=UNDEFINED_CODE, message=UNEXPECTED_FAILURE_MESSAGE)


def response_failed_with(
    status: int, cause: Optional[BaseException]
) -> OperationResponse:
    return OperationResponse(int(status), error_message_for(cause).model_dump())


class ResponseHandler:
    """
    Collects the single response of an operation.

    Writing twice is a programming error and raises ResponseAlreadySentError.
    When a callback is given it receives the response as soon as it is written.
    """

    def __init__(self, callback: Optional[Callable[[OperationResponse], Any]] = None):
        self._callback = callback
        self._response: Optional[OperationResponse] = None

    @property
    def response(self) -> Optional[OperationResponse]:
        return self._response

    @property
    def is_completed(self) -> bool:
        return self._response is not None

    def respond(self, response: OperationResponse) -> OperationResponse:
        if self._response is not None:
            raise ResponseAlreadySentError(
                f"Cannot send {response.status_code}, the response "
                f"{self._response.status_code} was already sent."
            )
        self._response = response
        log.debug(f"Response {response.status_code}: {response.payload!r}")
        if self._callback is not None:
            self._callback(response)
        return response

    # --- Success ---

    def ok(self, payload: Any = None) -> OperationResponse:
        return self.respond(OperationResponse(HTTPStatus.OK, payload))

    def created(self, payload: Any = None) -> OperationResponse:
        return self.respond(OperationResponse(HTTPStatus.CREATED, payload))

    def no_content(self) -> OperationResponse:
        return self.respond(OperationResponse(HTTPStatus.NO_CONTENT))

    # --- Failures ---

    def error(self, status: int, code: str, message: str) -> OperationResponse:
        body = ErrorMessage(code=code, message=message)
        return self.respond(OperationResponse(int(status), body.model_dump()))

    def failed_with(
        self, status: int, cause: Optional[BaseException]
    ) -> OperationResponse:
        return self.respond(response_failed_with(status, cause))
