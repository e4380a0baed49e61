# tests/base/test_responses.py

import pytest

from async_model_resources.base.exceptions import (ResponseAlreadySentError,
                                                   ValidationErrorException)
from async_model_resources.base.responses import (ResponseHandler,
                                                  error_message_for,
                                                  response_failed_with)


def test_response_handler_records_the_response():
    received = []
    handler = ResponseHandler(received.append)

    response = handler.created({"id": "1"})

    assert response.status_code == 201
    assert response.is_success
    assert handler.is_completed
    assert received == [response]


def test_response_handler_rejects_a_second_response():
    handler = ResponseHandler()
    handler.no_content()

    with pytest.raises(ResponseAlreadySentError):
        handler.ok({"id": "1"})
    assert handler.response.status_code == 204


def test_error_response():
    response = ResponseHandler().error(400, "family", "Bad family")

    assert response.status_code == 400
    assert not response.is_success
    assert response.payload == {"code": "family", "message": "Bad family"}


def test_failed_with_records_the_response():
    handler = ResponseHandler()

    response = handler.failed_with(500, None)

    assert handler.response is response
    assert response.payload == {"code": "undefined", "message": "Unexpected failure"}


def test_failed_with_validation_error():
    response = response_failed_with(400, ValidationErrorException("family.name", "Empty"))

    assert response.payload == {"code": "family.name", "message": "Empty"}


def test_failed_with_other_exception():
    message = error_message_for(RuntimeError("Store down"))

    assert message.code == "RuntimeError"
    assert message.message == "Store down"


def test_failed_without_cause():
    message = error_message_for(None)

    assert message.code == "undefined"
    assert message.message == "Unexpected failure"


def test_failed_with_exception_without_message():
    message = error_message_for(ValueError())

    assert message.code == "ValueError"
    assert message.message != message.code
