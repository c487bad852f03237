"""
BaseService -- common constructor for kernel and module services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session``.  Kernel services (auditor,
    sequence) only flush.  Module services that own a whole operation
    (QuarantineService, AgreementQuarantineDeriver) commit on success and
    roll back on failure, one transaction per operation.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from plan_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.

    Non-goals:
        - Does NOT provide read-only query methods -- those belong in
          selectors.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
