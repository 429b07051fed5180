"""
Scalar field descriptors for UnitORM entities.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence, cast

if TYPE_CHECKING:
    from .model import Model


SEQUENCE = "sequence"
IDENTITY = "identity"
GENERATION_STRATEGIES = (SEQUENCE, IDENTITY)


class FieldError(Exception):
    """Internal exception for field configuration issues."""


class Field:
    """
    Base class for entity field descriptors.

    Values live in the instance's ``_field_values`` mapping; the descriptor
    converts assigned values and keeps the column metadata backends need.
    """

    _creation_counter = 0

    def __init__(
        self,
        *,
        primary_key: bool = False,
        unique: bool = False,
        nullable: bool = True,
        default: Any = None,
        db_type: Optional[str] = None,
        db_column: Optional[str] = None,
        choices: Optional[Sequence[Any]] = None,
    ) -> None:
        self.primary_key = primary_key
        self.unique = unique
        self.nullable = nullable
        self.default = default
        self.db_type = db_type
        self.db_column = db_column
        self.choices = tuple(choices) if choices is not None else None

        self.model: type["Model"] | None = None
        self.name: str | None = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        model_instance = cast("Model", instance)
        return model_instance._field_values.get(self.require_name())

    def __set__(self, instance: object, value: Any) -> None:
        model_instance = cast("Model", instance)
        name = self.require_name()
        if value is None:
            if not self.nullable and not self.primary_key:
                raise ValueError(f"Field '{name}' cannot be None")
            model_instance._field_values[name] = None
            return

        if self.choices and value not in self.choices:
            raise ValueError(f"Value '{value}' for field '{name}' not in choices {self.choices}")
        model_instance._field_values[name] = self.to_python(value)

    # Metadata helpers ----------------------------------------------------
    def bind(self, model: type["Model"], name: str) -> None:
        self.model = model
        self.name = name
        if self.db_column is None:
            self.db_column = name

    def contribute_to_class(self, model: type["Model"], name: str) -> None:
        self.bind(model, name)
        setattr(model, name, self)

    def require_name(self) -> str:
        if self.name is None:
            raise FieldError("Field name is not set.")
        return self.name

    def column_name(self) -> str:
        if self.db_column:
            return self.db_column
        return self.require_name()

    # Value access used by the persistence layer --------------------------
    def get_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def to_python(self, value: Any) -> Any:
        return value

    def state_value(self, instance: "Model") -> Any:
        """Value recorded in snapshots and compared by the dirty checker."""
        return instance._field_values.get(self.require_name())

    def db_value(self, instance: "Model") -> Any:
        """Value written to the storage column."""
        return instance._field_values.get(self.require_name())

    def load(self, instance: "Model", value: Any) -> None:
        """Assign a value read from storage, bypassing assignment checks."""
        instance._field_values[self.require_name()] = None if value is None else self.to_python(value)


class NumericField(Field):
    """Field whose values are coerced with ``coerce`` on assignment and load."""

    coerce: Any = int
    label = "integer"

    def to_python(self, value: Any) -> Any:
        if value is None:
            return value
        try:
            return type(self).coerce(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid {self.label} value '{value}' for field '{self.name}'") from exc


class AutoField(NumericField):
    """
    Integer primary key generated by the storage backend.

    ``strategy="sequence"`` draws the value when the entity is persisted so it
    is visible immediately; ``strategy="identity"`` leaves it unset until the
    row is inserted during flush.
    """

    label = "identity"

    def __init__(self, *, strategy: str = SEQUENCE, db_column: Optional[str] = None) -> None:
        if strategy not in GENERATION_STRATEGIES:
            raise FieldError(f"Unknown generation strategy '{strategy}'")
        super().__init__(primary_key=True, nullable=False, db_type="INTEGER", db_column=db_column)
        self.strategy = strategy


class IntegerField(NumericField):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "INTEGER")
        super().__init__(**kwargs)


class FloatField(NumericField):
    coerce = float
    label = "float"

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "REAL")
        super().__init__(**kwargs)


TRUTHY = frozenset({"true", "t", "yes", "1"})
FALSY = frozenset({"false", "f", "no", "0"})


class BooleanField(Field):
    def __init__(self, *, default: Any = False, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "BOOLEAN")
        kwargs.setdefault("nullable", False)
        super().__init__(default=default, **kwargs)

    def to_python(self, value: Any) -> bool | None:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        token = str(value).strip().lower()
        if token in TRUTHY:
            return True
        if token in FALSY:
            return False
        raise ValueError(f"Invalid boolean value '{value}' for field '{self.name}'")


class StringField(Field):
    def __init__(self, *, max_length: int = 255, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "TEXT")
        super().__init__(**kwargs)
        self.max_length = max_length

    def to_python(self, value: Any) -> str | None:
        if value is None:
            return value
        text = str(value)
        if self.max_length and len(text) > self.max_length:
            raise ValueError(f"Value for field '{self.name}' exceeds max_length {self.max_length}")
        return text
