"""Transaction boundaries for the service layer.

``SQLAlchemyUnitOfWork`` owns read-write work (commit on clean exit);
``SQLAlchemyReadOnlyUnitOfWork`` guards lookups and never commits.
"""

from .base import UnitOfWork
from .sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork

__all__ = [
    "SQLAlchemyReadOnlyUnitOfWork",
    "SQLAlchemyUnitOfWork",
    "UnitOfWork",
]
