"""
User model. Buyers, organizers and staff are all users; authentication
data lives with the identity provider, not here.
"""

from sqlalchemy import Column, Integer, String, Boolean

from settlement.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # user, organizer, admin
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
