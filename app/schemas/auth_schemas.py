from pydantic import Field, field_validator

from app.db.models import UserRole
from .camel_base_model import CamelCaseBaseModel as BaseModel


class Principal(BaseModel):
    """Authenticated actor supplied by the authentication provider"""

    id: str = Field(..., min_length=1, description="User ID")
    role: UserRole = Field(..., description="User role (user/admin)")
    first_name: str = Field("", description="First name")
    last_name: str = Field("", description="Last name")

    @field_validator("id", mode="before")
    def stringify_id(cls, v):
        return str(v).strip() if v is not None else v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
