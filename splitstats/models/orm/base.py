from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# JSONB on PostgreSQL, plain JSON everywhere else
JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


class CustomBase:
    # Columns shown by repr(); large JSON payloads stay out of log lines
    __repr_attrs__ = ()

    def __repr__(self) -> str:
        names = self.__repr_attrs__ or [c.name for c in self.__table__.columns]
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name in names)
        return f"{self.__class__.__name__}({fields})"


Base = declarative_base(cls=CustomBase)
