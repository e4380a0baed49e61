# src/async_model_resources/resources/model_resources.py

"""
Generic operations to manage the models of a resource.

Every operation receives the context of the model it works on, the
collaborators that search and persist the models, and a ResponseHandler that
receives exactly one response. The operations never raise for the expected
failures (bad payloads, invalid models, missing models or persistence errors);
they answer them with an error response that has a code and a message.
"""

import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable, List, Optional, Type, TypeVar

from async_model_resources.base.context import (ModelContext,
                                                ModelFieldContext,
                                                ModelsPageContext)
from async_model_resources.base.exceptions import (DecodeException,
                                                   ObjectNotFoundException)
from async_model_resources.base.interfaces import (Deleter, ElementMatcher,
                                                   FieldAccessor, PageSearcher,
                                                   Searcher, Storer, Updater)
from async_model_resources.base.model import DocumentModel, TimestampedModel
from async_model_resources.base.responses import (OperationResponse,
                                                  ResponseHandler)
from async_model_resources.base.utils import generate_id, prepare_for_storage

log = logging.getLogger(__name__)

T = TypeVar("T")

OnSuccess = Optional[Callable[[Any], Awaitable[Any]]]


class OperationError(Exception):
    """
    Stops an operation with an error response.

    When no code is given the response describes the cause, the way
    `ResponseHandler.failed_with` does.
    """

    def __init__(
        self,
        status: int,
        code: Optional[str] = None,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message or (str(cause) if cause else code))
        self.status = int(status)
        self.code = code
        self.message = message
        self.cause = cause

    def answer(self, handler: ResponseHandler) -> OperationResponse:
        if self.code is None:
            return handler.failed_with(self.status, self.cause)
        return handler.error(self.status, self.code, self.message or self.code)


async def _run(
    handler: ResponseHandler,
    context: Any,
    operation: Callable[[], Awaitable[OperationResponse]],
) -> OperationResponse:
    try:
        return await operation()
    except OperationError as error:
        log.debug(
            f"Operation over {context} failed with {error.status}: {error}",
            exc_info=error.cause is not None,
        )
        return error.answer(handler)
    except Exception:
        if handler.is_completed:
            raise
        log.error(f"Unexpected failure of the operation over {context}", exc_info=True)
        return handler.failed_with(HTTPStatus.INTERNAL_SERVER_ERROR, None)


def _payload_of(value: Any) -> Any:
    if value is None:
        return None
    to_payload = getattr(value, "to_payload", None)
    if callable(to_payload):
        return to_payload()
    return prepare_for_storage(value)


def _not_found(model: ModelContext) -> OperationError:
    return OperationError(
        HTTPStatus.NOT_FOUND,
        model.name,
        f"Does not exist a '{model.name}' associated to '{model.id}'.",
    )


def _copy(value: T) -> T:
    return value.model_copy(deep=True)


# --- Shared steps ---


def _decode(payload: Any, model_type: Type[T], name: str, code: str) -> T:
    if payload is None:
        raise OperationError(
            HTTPStatus.BAD_REQUEST, code, f"No JSON provided for a {name}."
        )
    if isinstance(payload, model_type):
        return _copy(payload)
    try:
        return model_type.from_payload(payload)
    except DecodeException as cause:
        log.debug(f"The JSON does not represent a {name}: {payload!r}")
        raise OperationError(
            HTTPStatus.BAD_REQUEST,
            code,
            f"Bad {name}. {cause}",
            cause,
        ) from cause


async def _validate(value: Any, code_prefix: str) -> None:
    try:
        await value.validate_model(code_prefix)
    except Exception as cause:
        raise OperationError(HTTPStatus.BAD_REQUEST, cause=cause) from cause


async def _search(model: ModelContext, searcher: Searcher) -> Any:
    try:
        found = await searcher(model.id)
    except ObjectNotFoundException as cause:
        raise _not_found(model) from cause
    except Exception as cause:
        log.debug(f"Cannot search {model}: {cause}", exc_info=True)
        raise _not_found(model) from cause
    if found is None:
        raise _not_found(model)
    model.target = found
    return found


async def _persist_update(model: ModelContext, updater: Updater) -> None:
    try:
        await updater(model.value)
    except Exception as cause:
        raise OperationError(HTTPStatus.BAD_REQUEST, cause=cause) from cause
    log.debug(f"Updated {model}")


async def _search_element(
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
) -> Any:
    parent = await _search(element.model, searcher)
    element.field = field.get(parent)
    element.index = matcher.index_of(element.field, element.id)
    if element.index < 0:
        raise OperationError(
            HTTPStatus.NOT_FOUND,
            element.code,
            f"On '{element.model}' does not found '{element}'.",
        )
    element.target = element.field[element.index]
    return element.target


async def _store_changed_field(
    element: ModelFieldContext,
    elements: List[Any],
    field: FieldAccessor,
    updater: Updater,
) -> None:
    """Replace the field of a copy of the parent with the changed elements and persist it."""
    parent = element.model
    parent.value = _copy(parent.target)
    field.set(parent.value, elements)
    await _validate(parent.value, parent.name)
    if isinstance(parent.value, TimestampedModel):
        parent.value.mark_updated()
    await _persist_update(parent, updater)


async def _changed(
    model: ModelContext, code_prefix: str, merge: bool
) -> Any:
    """Apply the source (replacing or merging) to a copy of the target and validate it."""
    target = model.target
    try:
        if merge:
            value = await target.merge_with(model.source, code_prefix)
        else:
            value = await target.update_with(model.source, code_prefix)
    except Exception as cause:
        raise OperationError(HTTPStatus.BAD_REQUEST, cause=cause) from cause
    await _validate(value, code_prefix)
    return value


def _equal_to_original(code: str, name: str, merge: bool) -> OperationError:
    action = "merge" if merge else "update"
    return OperationError(
        HTTPStatus.BAD_REQUEST,
        f"{code}_to_{action}_equal_to_original",
        f"The {action}d '{name}' is equal to the current one.",
    )


# --- Public steps ---


async def to_model(
    payload: Any,
    model: ModelContext,
    handler: ResponseHandler,
    on_success: OnSuccess = None,
) -> Optional[Any]:
    """
    Decode the payload as the model type of the context.

    On success the decoded model is stored as the source of the context and
    `on_success` is awaited with it. Otherwise a bad request is answered and
    None is returned.
    """
    try:
        model.source = _decode(payload, model.type, model.name, model.name)
    except OperationError as error:
        error.answer(handler)
        return None
    if on_success is not None:
        await on_success(model.source)
    return model.source


async def to_models(
    payload: Any,
    model_type: Type[T],
    name: str,
    handler: ResponseHandler,
    on_success: OnSuccess = None,
) -> Optional[List[T]]:
    """Decode a JSON array of models, answering a bad request if any element fails."""
    try:
        if payload is None:
            raise OperationError(
                HTTPStatus.BAD_REQUEST, name, f"No JSON provided for a {name}."
            )
        if not isinstance(payload, (list, tuple)):
            raise OperationError(
                HTTPStatus.BAD_REQUEST,
                name,
                f"The JSON does not represent a {name}, because it is not an array.",
            )
        models = [_decode(value, model_type, name, name) for value in payload]
    except OperationError as error:
        error.answer(handler)
        return None
    if on_success is not None:
        await on_success(models)
    return models


async def validate(
    model: ModelContext,
    handler: ResponseHandler,
    on_success: OnSuccess = None,
) -> bool:
    """
    Validate the value of the context, answering a bad request with the code of
    the invalid field when it is not valid.
    """
    try:
        await _validate(model.value, model.code_prefix)
    except OperationError as error:
        error.answer(handler)
        return False
    if on_success is not None:
        await on_success(model.value)
    return True


# --- Model operations ---


async def retrieve_model(
    model: ModelContext, searcher: Searcher, handler: ResponseHandler
) -> OperationResponse:
    async def operation():
        found = await _search(model, searcher)
        log.debug(f"Found {model}")
        return handler.ok(_payload_of(found))

    return await _run(handler, model, operation)


async def check_model_exist(
    model: ModelContext, searcher: Searcher, handler: ResponseHandler
) -> OperationResponse:
    async def operation():
        await _search(model, searcher)
        return handler.no_content()

    return await _run(handler, model, operation)


async def delete_model(
    model: ModelContext, deleter: Deleter, handler: ResponseHandler
) -> OperationResponse:
    async def operation():
        try:
            await deleter(model.id)
        except Exception as cause:
            log.debug(f"Cannot delete {model}: {cause}")
            raise _not_found(model) from cause
        log.debug(f"Deleted {model}")
        return handler.no_content()

    return await _run(handler, model, operation)


async def create_model(
    payload: Any, model: ModelContext, storer: Storer, handler: ResponseHandler
) -> OperationResponse:
    async def operation():
        model.source = _decode(payload, model.type, model.name, model.name)
        model.value = _copy(model.source)
        await _validate(model.value, model.code_prefix)
        if isinstance(model.value, TimestampedModel):
            model.value.mark_created()
        try:
            model.value = await storer(model.value)
        except Exception as cause:
            raise OperationError(HTTPStatus.BAD_REQUEST, cause=cause) from cause
        log.debug(f"Stored {model}")
        return handler.created(_payload_of(model.value))

    return await _run(handler, model, operation)


async def _change_model(
    payload: Any,
    model: ModelContext,
    searcher: Searcher,
    updater: Updater,
    handler: ResponseHandler,
    merge: bool,
) -> OperationResponse:
    async def operation():
        model.source = _decode(payload, model.type, model.name, model.name)
        await _search(model, searcher)
        model.value = await _changed(model, model.code_prefix, merge)
        if model.value.same_as(model.target):
            raise _equal_to_original(model.name, model.name, merge)
        if isinstance(model.value, TimestampedModel):
            model.value.mark_updated()
        await _persist_update(model, updater)
        # Every stored write increments the revision by one.
        if isinstance(model.value, DocumentModel) and model.value.revision is not None:
            model.value.revision += 1
        return handler.ok(_payload_of(model.value))

    return await _run(handler, model, operation)


async def update_model(
    payload: Any,
    model: ModelContext,
    searcher: Searcher,
    updater: Updater,
    handler: ResponseHandler,
) -> OperationResponse:
    """
    Replace a stored model with the payload (the identity fields are preserved).

    The answered model carries the revision that the update wrote, the one
    read plus one.
    """
    return await _change_model(payload, model, searcher, updater, handler, merge=False)


async def merge_model(
    payload: Any,
    model: ModelContext,
    searcher: Searcher,
    updater: Updater,
    handler: ResponseHandler,
) -> OperationResponse:
    """Merge the fields defined on the payload over a stored model."""
    return await _change_model(payload, model, searcher, updater, handler, merge=True)


async def retrieve_models_page(
    page: ModelsPageContext, searcher: PageSearcher, handler: ResponseHandler
) -> OperationResponse:
    async def operation():
        try:
            found = await searcher(page)
        except Exception as cause:
            log.debug(f"Cannot obtain the models.\n{page}", exc_info=True)
            raise OperationError(HTTPStatus.BAD_REQUEST, cause=cause) from cause
        return handler.ok(found)

    return await _run(handler, page, operation)


# --- Field operations ---


async def retrieve_model_field(
    model: ModelContext,
    searcher: Searcher,
    field: FieldAccessor,
    handler: ResponseHandler,
) -> OperationResponse:
    async def operation():
        found = await _search(model, searcher)
        elements = field.get(found) or []
        log.debug(f"For {model} retrieve {field.name}")
        return handler.ok([_payload_of(element) for element in elements])

    return await _run(handler, model, operation)


async def retrieve_model_field_element(
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
    handler: ResponseHandler,
) -> OperationResponse:
    async def operation():
        found = await _search_element(element, searcher, field, matcher)
        return handler.ok(_payload_of(found))

    return await _run(handler, element, operation)


async def _change_model_field_element(
    payload: Any,
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
    updater: Updater,
    handler: ResponseHandler,
    merge: bool,
) -> OperationResponse:
    async def operation():
        element.source = _decode(payload, element.type, element.name, element.code)
        await _search_element(element, searcher, field, matcher)
        element.value = await _changed(element, element.code_prefix, merge)
        if element.value.same_as(element.target):
            raise _equal_to_original(element.code, element.name, merge)
        if isinstance(element.value, TimestampedModel):
            element.value.mark_updated()
        elements = list(element.field)
        elements[element.index] = element.value
        await _store_changed_field(element, elements, field, updater)
        return handler.ok(_payload_of(element.value))

    return await _run(handler, element, operation)


async def update_model_field_element(
    payload: Any,
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
    updater: Updater,
    handler: ResponseHandler,
) -> OperationResponse:
    return await _change_model_field_element(
        payload, element, searcher, field, matcher, updater, handler, merge=False
    )


async def merge_model_field_element(
    payload: Any,
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
    updater: Updater,
    handler: ResponseHandler,
) -> OperationResponse:
    return await _change_model_field_element(
        payload, element, searcher, field, matcher, updater, handler, merge=True
    )


async def delete_model_field_element(
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    matcher: ElementMatcher,
    updater: Updater,
    handler: ResponseHandler,
) -> OperationResponse:
    async def operation():
        await _search_element(element, searcher, field, matcher)
        elements = list(element.field)
        del elements[element.index]
        await _store_changed_field(element, elements, field, updater)
        log.debug(f"Deleted {element}")
        return handler.no_content()

    return await _run(handler, element, operation)


async def create_model_field_element(
    payload: Any,
    element: ModelFieldContext,
    searcher: Searcher,
    field: FieldAccessor,
    updater: Updater,
    handler: ResponseHandler,
    id_field: Optional[str] = "id",
) -> OperationResponse:
    """
    Append a new element to the field of a model.

    The element receives a generated identifier on `id_field`; pass None for
    the lists whose elements are addressed by their position.
    """

    async def operation():
        element.source = _decode(payload, element.type, element.name, element.code)
        element.value = _copy(element.source)
        if id_field is not None and id_field in element.type.model_fields:
            setattr(element.value, id_field, generate_id())
        parent = await _search(element.model, searcher)
        element.field = field.get(parent)
        elements = list(element.field or [])
        element.index = len(elements)
        await _validate(element.value, element.code_prefix)
        if isinstance(element.value, TimestampedModel):
            element.value.mark_created()
        elements.append(element.value)
        await _store_changed_field(element, elements, field, updater)
        log.debug(f"Created {element}")
        return handler.created(_payload_of(element.value))

    return await _run(handler, element, operation)
