"""
SifaPass Billing - Admin Model

Organization administrators. Tokens are issued elsewhere; this service
only resolves the ``sub`` claim to an admin row and its organization.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sifapass.models.base import BaseModel


class Admin(BaseModel):
    """An organization administrator (or a platform superuser)."""

    __tablename__ = "admins"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_superuser: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="May curate the plan catalog",
    )

    def __repr__(self) -> str:
        return f"<Admin(id={self.id}, email={self.email})>"
