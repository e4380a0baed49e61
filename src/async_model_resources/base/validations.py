# src/async_model_resources/base/validations.py
"""
Helpers to implement `Model.validate_model`.

Each helper returns the normalized value or raises a ValidationErrorException
coded with the qualified name of the field ('<prefix>.<field>').
"""

from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from .exceptions import ValidationErrorException

T = TypeVar("T")
Number = Union[int, float]


def validate_nullable_string_field(
    code_prefix: str,
    field_name: str,
    value: Optional[str],
    possible_values: Optional[Iterable[str]] = None,
) -> Optional[str]:
    """Trim a string value; blank values become None."""
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if possible_values:
        possible = list(possible_values)
        if trimmed not in possible:
            raise ValidationErrorException(
                f"{code_prefix}.{field_name}",
                f"'{trimmed}' is not a valid value for the field '{field_name}', "
                f"because it expects any of '{possible}'.",
            )
    return trimmed


def validate_string_field(
    code_prefix: str,
    field_name: str,
    value: Optional[str],
    possible_values: Optional[Iterable[str]] = None,
) -> str:
    trimmed = validate_nullable_string_field(
        code_prefix, field_name, value, possible_values
    )
    if trimmed is None:
        raise ValidationErrorException(
            f"{code_prefix}.{field_name}",
            f"The '{field_name}' can not be 'null' or contains an empty value.",
        )
    return trimmed


def validate_nullable_list_string_field(
    code_prefix: str, field_name: str, values: Optional[Sequence[Optional[str]]]
) -> Optional[List[str]]:
    """Trim the values, drop the blank ones and reject duplicates."""
    if not values:
        return None
    valid: List[str] = []
    for index, value in enumerate(values):
        if value is None:
            continue
        value = value.strip()
        if not value:
            continue
        if value in valid:
            raise ValidationErrorException(
                f"{code_prefix}.{field_name}[{index}]",
                f"'{value}' is duplicated at '{valid.index(value)}'.",
            )
        valid.append(value)
    return valid


def validate_time_stamp(
    code_prefix: str, field_name: str, value: Optional[int], nullable: bool
) -> None:
    if value is not None and value < 0:
        raise ValidationErrorException(
            f"{code_prefix}.{field_name}",
            f"The '{value}' is not valid time stamp because is less than '0'.",
        )
    if not nullable and value is None:
        raise ValidationErrorException(
            f"{code_prefix}.{field_name}", f"The '{field_name}' has to be defined."
        )


def validate_number_on_range(
    code_prefix: str,
    field_name: str,
    value: Optional[Number],
    nullable: bool,
    min_value: Optional[Number] = None,
    max_value: Optional[Number] = None,
) -> None:
    """Check that a number is on an inclusive range; any bound may be None."""
    code = f"{code_prefix}.{field_name}"
    if value is None:
        if not nullable:
            raise ValidationErrorException(
                code, f"The '{field_name}' has to be defined."
            )
        return
    if min_value is not None and value < min_value:
        raise ValidationErrorException(
            code, f"The '{value}' is not valid because it is less than '{min_value}'."
        )
    if max_value is not None and value > max_value:
        raise ValidationErrorException(
            code,
            f"The '{value}' is not valid because it is greater than '{max_value}'.",
        )


async def validate_models(
    code_prefix: str,
    models: Optional[List[T]],
    is_same: Callable[[T, T], bool],
) -> None:
    """
    Validate each model of a list, removing the null elements, and reject the
    elements that `is_same` considers already defined at a previous position.
    """
    if not models:
        return
    models[:] = [model for model in models if model is not None]
    for index, model in enumerate(models):
        model_prefix = f"{code_prefix}[{index}]"
        validate = getattr(model, "validate_model", None)
        if validate is not None:
            await validate(model_prefix)
        for first_index in range(index):
            if is_same(models[first_index], model):
                raise ValidationErrorException(
                    model_prefix,
                    f"This model is already defined at '{first_index}'.",
                )
