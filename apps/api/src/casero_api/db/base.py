from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Base class for collection models; table name defaults to the class name."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


def new_document_id() -> str:
    """Opaque string id for new documents."""
    return uuid4().hex
