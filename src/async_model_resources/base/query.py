# src/async_model_resources/base/query.py
import copy
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

from pymongo import ASCENDING, DESCENDING

from .exceptions import ValidationErrorException

# --- Setup Logging ---
log = logging.getLogger(__name__)


# --- Helper Functions ---
def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def contains_pattern(value: str) -> bool:
    """
    Check if a value is a regular expression delimited by slashes ('/abc/').

    '/' and '//' are too short to hold a pattern, so they are literal values.
    """
    return len(value) > 2 and value.startswith("/") and value.endswith("/")


def extract_pattern(value: str) -> str:
    """Return the pattern inside the slash delimiters of a value."""
    return value[1:-1]


# --- Find Options ---
@dataclass
class FindOptions:
    """Options applied to a find on a collection (pagination, order and projection)."""

    skip: int = 0
    limit: int = 0
    sort: Dict[str, int] = field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None

    def sort_spec(self) -> Optional[List[Tuple[str, int]]]:
        """Return the order as the list of (key, direction) expected by pymongo."""
        if not self.sort:
            return None
        return [
            (key, DESCENDING if order < 0 else ASCENDING)
            for key, order in self.sort.items()
        ]

    def copy(self) -> "FindOptions":
        """Creates a deep copy of the FindOptions."""
        return copy.deepcopy(self)


# --- Query Builder ---
class QueryBuilder:
    """
    Builds a MongoDB filter document incrementally using a fluent API.

    Every ``with*`` method ignores ``None``/empty/blank inputs, so optional
    search parameters can be chained without checking them first. The final
    `build()` returns the accumulated filter (an empty one matches every
    document).
    """

    _query: Dict[str, Any]
    _logger: logging.Logger

    def __init__(self):
        self._logger = log
        self._query = {}

    def _put(self, field_name: str, value: Any) -> "QueryBuilder":
        self._logger.debug(f"Adding restriction on '{field_name}': {value!r}")
        self._query[field_name] = value
        return self

    def with_regex(self, field_name: str, pattern: Optional[str]) -> "QueryBuilder":
        """Restrict the field to match a regular expression."""
        if _is_blank(pattern):
            return self
        return self._put(field_name, {"$regex": pattern})

    def with_regexes(
        self, field_name: str, patterns: Optional[Iterable[str]]
    ) -> "QueryBuilder":
        """Restrict an array field to contain elements matching all the patterns."""
        if patterns is None:
            return self
        patterns_match = [
            {"$elemMatch": {"$regex": pattern}}
            for pattern in patterns
            if not _is_blank(pattern)
        ]
        if patterns_match:
            self._put(field_name, {"$all": patterns_match})
        return self

    def with_value(self, field_name: str, value: Any) -> "QueryBuilder":
        """Restrict the field to be equal to the value (None is an explicit null)."""
        return self._put(field_name, value)

    def with_eq_or_regex(self, field_name: str, value: Optional[str]) -> "QueryBuilder":
        """
        Restrict the field to match a pattern if the value is delimited by
        slashes, or to be equal to the value otherwise.
        """
        if value is None:
            return self
        if contains_pattern(value):
            return self.with_regex(field_name, extract_pattern(value))
        return self._put(field_name, value)

    def with_eq_or_regexes(
        self, field_name: str, values: Optional[Iterable[Optional[str]]]
    ) -> "QueryBuilder":
        """Restrict an array field to contain elements equal to or matching all the values."""
        if values is None:
            return self
        patterns_match = [
            {"$elemMatch": self._element_match(value)}
            for value in values
            if value is not None
        ]
        if patterns_match:
            self._put(field_name, {"$all": patterns_match})
        return self

    def with_element_eq_or_regex(
        self,
        field_name: str,
        sub_field_name: str,
        values: Optional[Iterable[Optional[str]]],
    ) -> "QueryBuilder":
        """
        Restrict an array of objects to contain, for each value, an element
        whose sub field is equal to or matches the value.
        """
        if values is None:
            return self
        elements_match = [
            {"$elemMatch": {sub_field_name: self._element_match(value)}}
            for value in values
            if value is not None
        ]
        if elements_match:
            self._put(field_name, {"$all": elements_match})
        return self

    def with_no_exist_null_eq_or_regex(
        self, field_name: str, value: Optional[str]
    ) -> "QueryBuilder":
        """Like `with_eq_or_regex` but a None value requires the field to be undefined or null."""
        if value is None:
            return self._put(field_name, None)
        return self.with_eq_or_regex(field_name, value)

    def with_range(
        self, field_name: str, minimum: Optional[Any], maximum: Optional[Any]
    ) -> "QueryBuilder":
        """Restrict the field to an inclusive range; any bound may be omitted."""
        if minimum is None and maximum is None:
            return self
        restriction: Dict[str, Any] = {}
        if minimum is not None:
            restriction["$gte"] = minimum
        if maximum is not None:
            restriction["$lte"] = maximum
        return self._put(field_name, restriction)

    def with_exist(self, field_name: str, exists: Optional[bool]) -> "QueryBuilder":
        """Require the field to be defined and not null, or to be undefined or null."""
        if exists is None:
            return self
        if exists:
            return self._put(field_name, {"$exists": True, "$ne": None})
        return self._put(field_name, None)

    def _element_match(self, value: str) -> Dict[str, Any]:
        if contains_pattern(value):
            return {"$regex": extract_pattern(value)}
        return {"$eq": value}

    def build(self) -> Dict[str, Any]:
        """Return the filter document built so far."""
        self._logger.debug(f"Built query: {self._query}")
        return self._query


# --- Sort Parameters ---
def query_param_to_sort(
    values: Optional[Iterable[Optional[str]]],
    code_prefix: str,
    check_key: Optional[Callable[[str], Optional[str]]] = None,
) -> Optional[Dict[str, int]]:
    """
    Convert the values of a sort query parameter to a sort document.

    Each value is a field name optionally prefixed by '+' (ascending, the
    default) or '-' (descending).

    Args:
        values: The order items, e.g. ``["+name", "-age"]``.
        code_prefix: Prefix of the code of the validation errors.
        check_key: Optional function that maps a field name to the key to
                   sort by, returning None when the field cannot be sorted.

    Returns:
        The sort document, or None if there are no values.

    Raises:
        ValidationErrorException: If an item is null, empty, not valid or duplicated.
    """
    if values is None:
        return None
    values = list(values)
    if not values:
        return None

    sort: Dict[str, int] = {}
    for index, value in enumerate(values):
        code = f"{code_prefix}[{index}]"
        if value is None:
            raise ValidationErrorException(code, "An order item can not be 'null'.")

        value = value.strip()
        order = 1
        if value.startswith("+"):
            value = value[1:]
        elif value.startswith("-"):
            order = -1
            value = value[1:]

        if not value:
            raise ValidationErrorException(
                code, f"You must to define a field in '{values[index]}'."
            )

        key = value
        if check_key is not None:
            key = check_key(value)
            if key is None:
                raise ValidationErrorException(
                    code, f"The field '{value}' is not valid."
                )

        if key in sort:
            raise ValidationErrorException(
                code,
                f"The '{value}' that represents the field '{key}' is already defined.",
            )
        sort[key] = order

    return sort
