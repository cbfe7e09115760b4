from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def enum_type(enum_cls, name: str) -> Enum:
    # stored as plain strings so the same schema works on PostgreSQL and SQLite
    return Enum(enum_cls, name=name, native_enum=False, length=32, values_callable=_enum_values)
