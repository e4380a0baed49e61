# src/async_model_resources/base/context.py
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from .query import FindOptions

T = TypeVar("T")
E = TypeVar("E")
I = TypeVar("I")


@dataclass
class ModelContext(Generic[T, I]):
    """
    The model a request operates on. It is created per request and the
    operations fill it as the payload is decoded and the model is found.

    Attributes:
        name: Human label of the model, used to build the error codes.
        type: The model class.
        id: Identifier of the model.
        source: The model decoded from the received payload.
        target: The stored model found by its identifier.
        value: The validated model that results from the operation.
    """

    name: str
    type: Type[T]
    id: Optional[I] = None
    source: Optional[T] = None
    target: Optional[T] = None
    value: Optional[T] = None

    @property
    def code_prefix(self) -> str:
        return self.name

    def __str__(self) -> str:
        return f"{self.name}({self.id!r})"


@dataclass
class ModelFieldContext(ModelContext[E, I], Generic[E, I]):
    """
    An element of a list field of a model. `name` is the name of the field,
    `id` identifies the element in the list and `model` the owner.
    """

    model: Optional[ModelContext[Any, Any]] = None
    field: Optional[List[E]] = None
    index: int = -1

    @property
    def code(self) -> str:
        """Code of the errors about the element, '<modelName>_<fieldName>'."""
        return f"{self.model.name}_{self.name}"

    @property
    def code_prefix(self) -> str:
        base = f"{self.model.name}.{self.name}"
        if self.index > -1:
            return f"{base}[{self.index}]"
        return base

    def __str__(self) -> str:
        return f"{self.model}.{self.name}[{self.id!r}]"


@dataclass
class ModelsPageContext:
    """The query, order and pagination to search for a page of models."""

    query: Dict[str, Any] = field(default_factory=dict)
    sort: Optional[Dict[str, int]] = None
    offset: int = 0
    limit: int = 0

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError(f"The offset can not be negative, got {self.offset}")
        if self.limit < 0:
            raise ValueError(f"The limit can not be negative, got {self.limit}")

    def to_find_options(self) -> FindOptions:
        return FindOptions(skip=self.offset, limit=self.limit, sort=dict(self.sort or {}))

    def __str__(self) -> str:
        text = ""
        if self.query:
            text += f"query:\n{json.dumps(self.query, indent=2, default=str)}\n"
        if self.sort:
            text += f"sort:\n{json.dumps(self.sort, indent=2)}\n"
        return text + f"offset:{self.offset}\nlimit:{self.limit}\n"
