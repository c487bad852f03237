"""Provider model: the party funds are quarantined for."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from plan_kernel.db.base import TrackedBase


class Provider(TrackedBase):
    """A registered support provider."""

    __tablename__ = "crm_providers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    abn: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Provider {self.name} {self.abn}>"
