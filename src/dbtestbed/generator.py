"""Random test data for mapped models.

:func:`generate` builds an instance of a mapped model with every plain
column filled in.  Values follow the column type, and for strings the
column name picks a plausible shape (``email`` gets an address, ``city`` a
city, and so on).  Primary keys, foreign keys and ``*_id`` columns are left
for the database or the test to set.

Values come from a module-level :class:`faker.Faker` instance; call
:func:`seed_random` for reproducible output.
"""

from __future__ import annotations

import enum
import logging
import re
import string
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, TypeVar

from faker import Faker
from sqlalchemy import Column, inspect
from sqlalchemy.types import TypeDecorator, TypeEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

fake = Faker()

DEFAULT_MAX_LENGTH = 100


def seed_random(seed: int | None) -> None:
    """Seed the generator; ``None`` reseeds from system entropy."""
    fake.seed_instance(seed)


# ---------------------------------------------------------------------------
# Primitive values
# ---------------------------------------------------------------------------


def generate_first_name() -> str:
    return fake.first_name()


def generate_last_name() -> str:
    return fake.last_name()


def generate_name() -> str:
    return f"{generate_first_name()} {generate_last_name()}"


def _local_part(name: str) -> str:
    return re.sub(r"[^a-z]", "", name.lower()) or "user"


def generate_email() -> str:
    first = _local_part(generate_first_name())
    last = _local_part(generate_last_name())
    return f"{first}.{last}{fake.random_int(0, 99)}@{fake.free_email_domain()}"


def generate_phone() -> str:
    return fake.numerify("+1-%##-%##-####")


def generate_text(max_length: int) -> str:
    """Lorem-ipsum text, cut to at most *max_length* characters."""
    return fake.text(max_nb_chars=max(5, max_length))[:max_length]


def pick_random(items: Sequence[T]) -> T:
    if not items:
        raise ValueError("Cannot pick from an empty sequence")
    return fake.random_element(items)


def random_int(minimum: int = 0, maximum: int = 100) -> int:
    """A random integer in ``[minimum, maximum]``."""
    return fake.random_int(minimum, maximum)


def random_decimal(minimum: float = 0, maximum: float = 100) -> Decimal:
    """A random two-place decimal in ``[minimum, maximum]``."""
    value = fake.random.uniform(float(minimum), float(maximum))
    return Decimal(str(round(value, 2)))


def _random_datetime() -> datetime:
    return fake.date_time_between(start_date="-5y", end_date="+1y", tzinfo=timezone.utc)


def _generate_string(name: str, max_length: int) -> str:
    if "email" in name:
        return generate_email()
    if "phone" in name:
        return generate_phone()
    if "name" in name:
        if "first" in name:
            return generate_first_name()
        if "last" in name:
            return generate_last_name()
        return generate_name()
    if "url" in name or "website" in name:
        return fake.url()
    if "description" in name or "content" in name or "body" in name:
        return generate_text(min(500, max_length))
    if "title" in name:
        return fake.sentence(nb_words=4).rstrip(".")
    if "code" in name or "sku" in name:
        return fake.bothify("??-####", letters=string.ascii_uppercase)
    if "zip" in name or "postal" in name:
        return fake.postcode()
    if "city" in name:
        return fake.city()
    if "country" in name:
        return fake.country()
    if "address" in name or "street" in name:
        return fake.street_address()
    upper = min(50, max_length)
    return generate_text(fake.random_int(min(5, upper), upper))


# ---------------------------------------------------------------------------
# Column driven generation
# ---------------------------------------------------------------------------


def _is_generated_elsewhere(key: str, column: Column) -> bool:
    name = key.lower()
    return (
        column.primary_key
        or bool(column.foreign_keys)
        or name == "id"
        or name.endswith("_id")
    )


def _resolve_type(column: Column) -> tuple[type | None, TypeEngine]:
    """The Python type of *column* and the SQL type that supplies it.

    ``TypeDecorator`` wrappers that do not report a Python type of their own
    (``sqlmodel.AutoString`` reports ``object``) are unwrapped to their
    underlying implementation type.
    """
    sql_type = column.type
    while True:
        try:
            python_type = sql_type.python_type
        except NotImplementedError:
            python_type = None
        if python_type is object:
            python_type = None
        if python_type is not None or not isinstance(sql_type, TypeDecorator):
            return python_type, sql_type
        sql_type = sql_type.impl


def _value_for(key: str, column: Column) -> Any:
    enum_class = getattr(column.type, "enum_class", None)
    if enum_class is not None:
        return fake.random_element(list(enum_class))

    python_type, sql_type = _resolve_type(column)
    if python_type is None:
        return None
    if issubclass(python_type, enum.Enum):
        return fake.random_element(list(python_type))
    if python_type is str:
        max_length = getattr(sql_type, "length", None) or DEFAULT_MAX_LENGTH
        return _generate_string(key.lower(), max_length)[:max_length]
    if python_type is bool:
        return fake.pybool()
    if python_type is int:
        return random_int(0, 1000)
    if python_type is Decimal:
        return random_decimal(0, 1000)
    if python_type is float:
        return float(random_decimal(0, 1000))
    if python_type is datetime:
        return _random_datetime()
    if python_type is date:
        return _random_datetime().date()
    if python_type is time:
        return fake.time_object()
    if python_type is uuid.UUID:
        return uuid.UUID(fake.uuid4())
    return None


def generate(
    model: type[T], configure: Callable[[T], Any] | None = None, **overrides: Any
) -> T:
    """Build a *model* instance with random column values.

    Parameters
    ----------
    model:
        A mapped class (SQLModel table model or declarative class).
    configure:
        Called with the new instance after generation, to adjust it.
    **overrides:
        Fixed column values; these are not generated.

    Returns
    -------
    The new, transient instance.
    """
    values: dict[str, Any] = {}
    for attr in inspect(model).column_attrs:
        if attr.key in overrides or len(attr.columns) != 1:
            continue
        column = attr.columns[0]
        if not isinstance(column, Column) or _is_generated_elsewhere(attr.key, column):
            continue
        value = _value_for(attr.key, column)
        if value is not None:
            values[attr.key] = value
    values.update(overrides)

    entity = model(**values)
    if configure is not None:
        configure(entity)
    return entity


def generate_many(
    model: type[T], count: int, configure: Callable[[T, int], Any] | None = None
) -> list[T]:
    """Generate *count* instances; *configure* receives each one and its index."""
    entities = []
    for index in range(count):
        entity = generate(model)
        if configure is not None:
            configure(entity, index)
        entities.append(entity)
    logger.debug("Generated %d %s instances", count, model.__name__)
    return entities
