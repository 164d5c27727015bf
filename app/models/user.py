import enum
from sqlalchemy import Column, String, Enum
from sqlalchemy.orm import relationship
from .base import Base


class UserRole(enum.Enum):
    PATIENT = "PATIENT"
    NURSE = "NURSE"
    DOCTOR = "DOCTOR"
    PHARMACY = "PHARMACY"
    ADMIN = "ADMIN"


class User(Base):
    """Account row owned by the auth service; read here for identity lookups."""
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    role = Column(
        Enum(
            UserRole,
            native_enum=False,
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        nullable=False
    )

    patient = relationship("Patient", back_populates="user", uselist=False)
    nurse = relationship("Nurse", back_populates="user", uselist=False)
    doctor = relationship("Doctor", back_populates="user", uselist=False)
