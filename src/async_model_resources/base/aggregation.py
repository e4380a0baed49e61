# src/async_model_resources/base/aggregation.py
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

log = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")


def split_element_path(element_path: Optional[str]) -> List[str]:
    """
    Split a dotted path to an element nested in arrays ('a.b.c') into its
    segments, ignoring any whitespace. A null or blank path has no segments.
    """
    if element_path is None:
        return []
    trimmed = _WHITESPACE.sub("", element_path)
    if not trimmed:
        return []
    return trimmed.split(".")


class AggregationBuilder:
    """
    Builds an aggregation pipeline to query elements nested in arrays.

    The builder only appends stages. Unwinding the same path twice adds the
    stages twice, so callers must unwind each path once per pipeline.
    """

    _pipeline: List[Dict[str, Any]]

    def __init__(self):
        self._pipeline = []

    def unwind(self, element_path: Optional[str]) -> "AggregationBuilder":
        """Unwind every array on a dotted path ('a.b' unwinds 'a' and 'a.b')."""
        return self.unwind_path(split_element_path(element_path))

    def unwind_path(self, element_path: Optional[Sequence[str]]) -> "AggregationBuilder":
        """Unwind every array on an already split path."""
        if not element_path:
            return self
        path = ""
        for segment in element_path:
            path = f"{path}.{segment}" if path else f"${segment}"
            log.debug(f"Adding $unwind stage for '{path}'")
            self._pipeline.append(
                {"$unwind": {"path": path, "includeArrayIndex": f"{segment}Index"}}
            )
        return self

    def match(self, query: Optional[Dict[str, Any]]) -> "AggregationBuilder":
        """Filter the documents flowing through the pipeline; empty filters are ignored."""
        if query:
            self._pipeline.append({"$match": query})
        return self

    def sort(
        self, order: Optional[Dict[str, int]], offset: int, limit: int
    ) -> "AggregationBuilder":
        """
        Sort (when an order is given) and paginate. The limit covers the skipped
        documents too, because it is applied before skipping.
        """
        if order:
            self._pipeline.append({"$sort": order})
        self._pipeline.append({"$limit": offset + limit})
        if offset > 0:
            self._pipeline.append({"$skip": offset})
        return self

    def build(self) -> List[Dict[str, Any]]:
        """Return the stages added so far (an empty pipeline passes every document)."""
        return self._pipeline
