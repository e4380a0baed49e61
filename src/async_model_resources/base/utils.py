import logging
import uuid
from dataclasses import asdict, is_dataclass
from typing import Any

logger = logging.getLogger(__name__)


def generate_id() -> str:
    """Generate a new unique identifier for models and nested elements."""
    return str(uuid.uuid4())


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert pydantic models, dataclasses and container types to
    values that the document store can persist.

    It handles:
    - pydantic BaseModel instances (dumped in JSON mode using field aliases)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (tuples and sets become lists)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            serialized = data.model_dump(mode="json", by_alias=True)
        except Exception as e:
            logger.debug(f"Error using model_dump(mode='json', by_alias=True): {e}")
            serialized = data.model_dump(by_alias=True)
        return prepare_for_storage(serialized)

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set)):
        return [prepare_for_storage(item) for item in data]

    return data


def merge_values(target: Any, source: Any) -> Any:
    """
    Merge a source JSON value over a target one.

    A ``None`` source keeps the target. Objects are merged key by key, arrays
    of the same size are merged element by element and any other value (or a
    value of a different type) replaces the target.
    """
    if source is None:
        return target
    if target is None or type(target) is not type(source):
        return source
    if isinstance(source, dict):
        return merge_dicts(target, source)
    if isinstance(source, list):
        return merge_lists(target, source)
    return source


def merge_dicts(target: dict, source: dict) -> dict:
    merged = dict(target)
    for key, source_value in source.items():
        merged[key] = merge_values(target.get(key), source_value)
    return merged


def merge_lists(target: list, source: list) -> list:
    if len(source) != len(target):
        return list(source)
    return [merge_values(t, s) for t, s in zip(target, source)]
