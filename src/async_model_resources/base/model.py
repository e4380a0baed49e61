# src/async_model_resources/base/model.py
import copy
import logging
import time
from typing import (Any, ClassVar, Dict, Optional, Set, Tuple, Type, TypeVar,
                    get_args, get_origin)

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import DecodeException, ValidationErrorException
from .utils import merge_values, prepare_for_storage

log = logging.getLogger(__name__)

M = TypeVar("M", bound="Model")


def now_timestamp() -> int:
    """Current time as the epoch seconds stored in the timestamp fields."""
    return int(time.time())


def location_to_code(code_prefix: str, location: Tuple[Any, ...]) -> str:
    """Build a field qualified code, e.g. ('siblings', 0, 'id') -> 'prefix.siblings[0].id'."""
    code = code_prefix
    for part in location:
        if isinstance(part, int):
            code += f"[{part}]"
        else:
            code += f".{part}"
    return code


def validation_error_to_exception(
    error: ValidationError, code_prefix: str
) -> ValidationErrorException:
    """Convert the first error reported by pydantic into a ValidationErrorException."""
    errors = error.errors()
    if not errors:
        return ValidationErrorException(code_prefix, str(error))
    first = errors[0]
    return ValidationErrorException(
        location_to_code(code_prefix, tuple(first.get("loc", ()))), first["msg"]
    )


def describe_decode_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(parts)


class Model(BaseModel):
    """
    Base of the typed views over the stored documents.

    Payload decoding rejects unknown fields. Subclasses extend
    `validate_model` with their domain rules and declare in `preserved_fields`
    the fields that an update or merge can not modify.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    preserved_fields: ClassVar[Tuple[str, ...]] = ()
    document_excluded_fields: ClassVar[Tuple[str, ...]] = ()

    # --- Conversion ---

    @classmethod
    def from_payload(cls: Type[M], payload: Any) -> M:
        """
        Decode a received payload.

        Raises:
            DecodeException: If the payload is null or does not represent this model.
        """
        if payload is None:
            raise DecodeException(f"No JSON provided for a {cls.__name__}.")
        try:
            return cls.model_validate(payload)
        except ValidationError as error:
            raise DecodeException(
                f"The JSON does not represent a {cls.__name__}, because "
                f"{describe_decode_error(error)}"
            ) from error

    @classmethod
    def from_document(cls: Type[M], document: Dict[str, Any]) -> M:
        """
        Decode a stored document, ignoring the fields that the model and its
        nested models do not define.

        Raises:
            DecodeException: If the document can not be decoded.
        """
        if document is None:
            raise DecodeException(f"No document provided for a {cls.__name__}.")
        return cls.from_payload(cls.known_fields_of(document))

    @classmethod
    def known_fields_of(cls, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return the values of the document without the fields that this model,
        or any of the models nested on it, does not define.
        """
        annotations: Dict[str, Any] = {}
        for name, info in cls.model_fields.items():
            annotations[name] = info.annotation
            if info.alias:
                annotations[info.alias] = info.annotation
        return {
            key: _known_values(annotations[key], value)
            for key, value in document.items()
            if key in annotations
        }

    @classmethod
    def preserved_field_names(cls) -> Set[str]:
        names: Set[str] = set()
        for klass in cls.__mro__:
            names.update(klass.__dict__.get("preserved_fields", ()))
        return names

    @classmethod
    def excluded_document_field_names(cls) -> Set[str]:
        names: Set[str] = set()
        for klass in cls.__mro__:
            names.update(klass.__dict__.get("document_excluded_fields", ()))
        return names

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON representation sent to the clients."""
        return self.model_dump(mode="json", by_alias=True)

    def to_document(self) -> Dict[str, Any]:
        """Return the representation to store on the document store."""
        excluded = self.excluded_document_field_names()
        return prepare_for_storage(
            self.model_dump(mode="json", by_alias=True, exclude=excluded or None)
        )

    def same_as(self, other: Any) -> bool:
        """Check if another model has exactly the same representation."""
        return type(self) is type(other) and self.to_payload() == other.to_payload()

    # --- Validation, update and merge ---

    async def validate_model(self, code_prefix: str) -> None:
        """
        Check that the model is valid. The default implementation validates the
        nested models.

        Raises:
            ValidationErrorException: With the code of the first invalid field.
        """
        for name, info in type(self).model_fields.items():
            value = getattr(self, name)
            key = info.alias or name
            if isinstance(value, Model):
                await value.validate_model(f"{code_prefix}.{key}")
            elif isinstance(value, (list, tuple)):
                for index, element in enumerate(value):
                    if isinstance(element, Model):
                        await element.validate_model(f"{code_prefix}.{key}[{index}]")

    async def update_with(self: M, source: Optional[M], code_prefix: str) -> M:
        """Return a copy of the source that keeps the preserved fields of this model."""
        if source is None:
            return self.model_copy(deep=True)
        updated = source.model_copy(deep=True)
        for name in self.preserved_field_names():
            setattr(updated, name, copy.deepcopy(getattr(self, name)))
        return updated

    async def merge_with(self: M, source: Optional[M], code_prefix: str) -> M:
        """
        Return a copy of this model with the fields explicitly set on the source
        merged over it.

        Raises:
            ValidationErrorException: If the merged values do not form a valid model.
        """
        if source is None:
            return self.model_copy(deep=True)
        target_values = self.model_dump(by_alias=True)
        source_values = source.model_dump(by_alias=True, exclude_unset=True)
        merged = merge_values(target_values, source_values)
        fields = type(self).model_fields
        for name in self.preserved_field_names():
            key = fields[name].alias or name
            merged[key] = target_values.get(key)
        try:
            return type(self).model_validate(merged)
        except ValidationError as error:
            log.debug(f"Merged values are not a valid {type(self).__name__}: {error}")
            raise validation_error_to_exception(error, code_prefix) from error


def _known_values(annotation: Any, value: Any) -> Any:
    if isinstance(annotation, type) and issubclass(annotation, Model):
        return annotation.known_fields_of(value) if isinstance(value, dict) else value
    origin = get_origin(annotation)
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return value
    if origin in (list, tuple, set, frozenset):
        if isinstance(value, (list, tuple)):
            return [_known_values(args[0], element) for element in value]
        return value
    if origin is dict:
        if isinstance(value, dict) and len(args) == 2:
            return {key: _known_values(args[1], element) for key, element in value.items()}
        return value
    if len(args) == 1:
        # Optional[X]
        return _known_values(args[0], value)
    return value


class DocumentModel(Model):
    """
    A model stored as a top level document. The store assigned '_id' is exposed
    as 'id' and '_revision' tracks the writes to detect concurrent updates.
    """

    preserved_fields: ClassVar[Tuple[str, ...]] = ("id", "revision")
    document_excluded_fields: ClassVar[Tuple[str, ...]] = ("id", "revision")

    id: Optional[str] = None
    revision: Optional[int] = Field(default=None, alias="_revision")

    @staticmethod
    def map_document_id(document: Dict[str, Any]) -> Dict[str, Any]:
        """Document mapper that renames the store identifier '_id' to 'id'."""
        mapped = dict(document)
        if "_id" in mapped:
            mapped["id"] = str(mapped.pop("_id"))
        return mapped

    @classmethod
    def from_document(cls: Type[M], document: Dict[str, Any]) -> M:
        if document is None:
            raise DecodeException(f"No document provided for a {cls.__name__}.")
        return super().from_document(DocumentModel.map_document_id(document))


class TimestampedModel(Model):
    """A model that records when it was created and last updated."""

    preserved_fields: ClassVar[Tuple[str, ...]] = ("creation_ts", "last_update_ts")

    creation_ts: Optional[int] = Field(default=None, alias="_creationTs")
    last_update_ts: Optional[int] = Field(default=None, alias="_lastUpdateTs")

    def mark_created(self) -> None:
        now = now_timestamp()
        self.creation_ts = now
        self.last_update_ts = now

    def mark_updated(self) -> None:
        self.last_update_ts = now_timestamp()
