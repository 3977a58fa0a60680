from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.database.database import Base
from app.common.mixins import TimestampMixin, utcnow


class User(Base, TimestampMixin):
    """Operador de caja. Las credenciales viven en el servicio de identidad."""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    user_locations = relationship("UserLocation", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class UserLocation(Base, TimestampMixin):
    """Rol de un operador en una ubicación (farmacia)."""
    __tablename__ = "user_locations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    location_id = Column(String(64), nullable=False, index=True)
    role = Column(String, nullable=False, default="cashier")  # owner, admin, seller, cashier, accountant, viewer
    is_active = Column(Boolean, default=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    user = relationship("User", back_populates="user_locations")

    __table_args__ = (
        UniqueConstraint("user_id", "location_id", name="uq_user_location"),
    )
