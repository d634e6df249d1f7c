"""Domain Entities - authenticated campus users"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional

from domain.enums import UserRole
from domain.value_objects import Actor


class User(BaseModel):
    """Campus account as seen by the booking core.

    Accounts are owned by the identity service; the core only needs the id
    bookings are keyed by and the role that decides what the caller may do.
    """
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.STUDENT
    disabled: bool = False

    class Config:
        from_attributes = True

    def as_actor(self) -> Actor:
        """Identity handed to the booking services"""
        return Actor(user_id=self.user_id, role=self.role)


class UserInDB(User):
    hashed_password: str
