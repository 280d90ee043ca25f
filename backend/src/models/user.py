"""
User identity model.

Every account (patient, professional, admin) is a row in this table.
Profile data lives in the role-specific Professional and Patient tables.
"""

from typing import Optional
from datetime import datetime
from sqlalchemy import String, TIMESTAMP, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class User(Base):
    """Identity used for authentication and role-based access."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True)
    """Lower-cased, trimmed email. Globally unique."""

    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """bcrypt hash. NULL for identities created by an invitation but not yet registered."""

    first_name: Mapped[str] = mapped_column(String(255))
    last_name: Mapped[str] = mapped_column(String(255))

    role: Mapped[str] = mapped_column(String(20))
    """One of 'patient', 'professional', 'admin'."""

    is_registered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """True once the user has completed registration (set a password)."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    professional_profile = relationship("Professional", back_populates="user", uselist=False)
    patient_profile = relationship(
        "Patient",
        back_populates="user",
        uselist=False,
        foreign_keys="[Patient.user_id]",
    )

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )

    @property
    def full_name(self) -> str:
        """First and last name joined for display."""
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
