# buyer_leads/models/user.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from buyer_leads.db.base import Base, TimestampMixin, UUIDMixin
from buyer_leads.models.enums import Role


class User(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "users"

    # Subject issued by the identity provider; the upsert key.
    external_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False, default="No Name")
    phone: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=Role.USER,
    )
