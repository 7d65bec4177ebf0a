"""User model definitions."""
from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Identity extracted from the bearer token."""

    user_id: str
    company_id: str
