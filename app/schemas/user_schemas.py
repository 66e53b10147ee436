from pydantic import BaseModel


class SessionUser(BaseModel):
    """Identity carried by the session token."""

    id: str
    role: str
    name: str | None = None
