"""Валидаторы значений настроек."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple


class Validator(ABC):
    """Абстрактный валидатор значения."""

    @abstractmethod
    def validate(self, value: Any) -> Tuple[bool, str]:
        """Возвращает (True, "") при успехе либо (False, описание ошибки)."""


class TypeValidator(Validator):
    """Значение должно принадлежать типу или набору типов."""

    def __init__(self, expected_type: type | Tuple[type, ...]) -> None:
        self.expected_type = expected_type

    def validate(self, value: Any) -> Tuple[bool, str]:
        # bool является подклассом int, поэтому числа проверяются строже
        if isinstance(value, bool) and self.expected_type in (int, float, (int, float)):
            return False, f"Expected number, got {type(value).__name__}"
        if isinstance(value, self.expected_type):
            return True, ""
        names = (
            ", ".join(t.__name__ for t in self.expected_type)
            if isinstance(self.expected_type, tuple)
            else self.expected_type.__name__
        )
        return False, f"Expected value of type {names}, got {type(value).__name__}"


class RangeValidator(Validator):
    """Числовое значение должно лежать в диапазоне."""

    def __init__(self, min_value: Optional[Any] = None, max_value: Optional[Any] = None) -> None:
        self.min_value = min_value
        self.max_value = max_value

    def validate(self, value: Any) -> Tuple[bool, str]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False, f"Expected number, got {type(value).__name__}"
        if (self.min_value is not None and value < self.min_value) or (
            self.max_value is not None and value > self.max_value
        ):
            return False, f"Value {value} is out of range [{self.min_value}, {self.max_value}]"
        return True, ""


class EnumValidator(Validator):
    """Значение должно входить в конечный набор."""

    def __init__(self, allowed_values: Iterable[Any]) -> None:
        self.allowed_values = list(allowed_values)

    def validate(self, value: Any) -> Tuple[bool, str]:
        if value in self.allowed_values:
            return True, ""
        return False, f"Value {value!r} not in allowed values: {self.allowed_values}"


class ContainsValidator(Validator):
    """Строка должна содержать обязательный фрагмент, например поле шаблона."""

    def __init__(self, fragment: str) -> None:
        self.fragment = fragment

    def validate(self, value: Any) -> Tuple[bool, str]:
        if not isinstance(value, str):
            return False, "ContainsValidator expects string values"
        if self.fragment in value:
            return True, ""
        return False, f"Value '{value}' must contain {self.fragment!r}"


class CompositeValidator(Validator):
    """Применяет несколько валидаторов и возвращает первую ошибку."""

    def __init__(self, validators: Iterable[Validator]) -> None:
        self.validators: List[Validator] = list(validators)

    def validate(self, value: Any) -> Tuple[bool, str]:
        for validator in self.validators:
            is_valid, error = validator.validate(value)
            if not is_valid:
                return False, error
        return True, ""
