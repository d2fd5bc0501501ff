from typing import Optional

from pydantic import BaseModel


class UserIdentity(BaseModel):
    """The authenticated caller as seen by the collaboration services."""

    uid: str
    display_name: str = ""
    photo_url: Optional[str] = None
