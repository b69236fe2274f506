from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.inspection import inspect
from sqlalchemy.orm import DeclarativeBase

from clinic.db.meta import meta


class Base(AsyncAttrs, DeclarativeBase):
    """Base for all models."""

    __abstract__ = True
    metadata = meta

    def __repr__(self) -> str:
        # Only loaded columns, so repr never triggers IO on an async session
        loaded = [
            f"{column.key}={self.__dict__[column.key]!r}"
            for column in inspect(type(self)).column_attrs
            if column.key in self.__dict__
        ]
        shown = ", ".join(loaded[:4])
        if len(loaded) > 4:
            shown += ", ..."
        return f"{type(self).__name__}({shown})"
