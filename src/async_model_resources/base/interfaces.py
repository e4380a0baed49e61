# src/async_model_resources/base/interfaces.py

from abc import ABC, abstractmethod
from typing import (Any, Awaitable, Callable, Dict, Generic, List, Optional,
                    TypeVar)

from .context import ModelsPageContext

# Type variables for the models, their identifiers and nested elements
T = TypeVar("T")
E = TypeVar("E")
I = TypeVar("I")

# --- Collaborator roles ---
# A searcher returns None (or raises ObjectNotFoundException) when nothing matches.
Searcher = Callable[[I], Awaitable[Optional[T]]]
Storer = Callable[[T], Awaitable[T]]
Updater = Callable[[T], Awaitable[None]]
Deleter = Callable[[I], Awaitable[None]]
PageSearcher = Callable[[ModelsPageContext], Awaitable[Dict[str, Any]]]


class FieldAccessor(Generic[T, E]):
    """
    Reads and replaces the list field of a model.

    By default it accesses the attribute `name`; custom getter and setter
    functions can be given for fields that are not plain attributes.
    """

    def __init__(
        self,
        name: str,
        getter: Optional[Callable[[T], Optional[List[E]]]] = None,
        setter: Optional[Callable[[T, List[E]], None]] = None,
    ):
        self.name = name
        self._getter = getter
        self._setter = setter

    def get(self, model: T) -> Optional[List[E]]:
        if self._getter is not None:
            return self._getter(model)
        return getattr(model, self.name)

    def set(self, model: T, elements: List[E]) -> None:
        if self._setter is not None:
            self._setter(model, elements)
        else:
            setattr(model, self.name, elements)


class ElementMatcher(Generic[E], ABC):
    """Locates an element inside the list field of a model."""

    @abstractmethod
    def index_of(self, elements: Optional[List[E]], element_id: Any) -> int:
        """Return the position of the element, or -1 when it is not defined."""
        pass


class ElementByIdMatcher(ElementMatcher[E]):
    """Finds the first element that satisfies `predicate(element, element_id)`."""

    def __init__(self, predicate: Callable[[E, Any], bool]):
        self._predicate = predicate

    def index_of(self, elements: Optional[List[E]], element_id: Any) -> int:
        if not elements:
            return -1
        for index, element in enumerate(elements):
            if element is not None and self._predicate(element, element_id):
                return index
        return -1


class ElementByIndexMatcher(ElementMatcher[E]):
    """Uses the identifier as the 0-based position of the element."""

    def index_of(self, elements: Optional[List[E]], element_id: Any) -> int:
        if not elements or element_id is None or isinstance(element_id, bool):
            return -1
        try:
            index = int(element_id)
        except (TypeError, ValueError):
            return -1
        if isinstance(element_id, float) and element_id != index:
            return -1
        if 0 <= index < len(elements):
            return index
        return -1


def search_element_by_id(predicate: Callable[[E, Any], bool]) -> ElementMatcher[E]:
    return ElementByIdMatcher(predicate)


def search_element_by_index() -> ElementMatcher[E]:
    return ElementByIndexMatcher()


def has_id(element: Any, element_id: Any) -> bool:
    """Predicate that compares the `id` attribute of an element."""
    return getattr(element, "id", None) == element_id
