"""
Cookie data models.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class Cookie(BaseModel):
    """
    Browser cookie as reported by the cookie store.

    Field aliases follow the browser cookie API (camelCase) so snapshots can
    be stored and compared in the same shape the store emits them.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    name: str = Field(default="", description="Cookie name")
    domain: str = Field(default="", description="Cookie domain (leading dot for domain cookies)")
    path: str = Field(default="/", description="Cookie path")
    value: str = Field(default="", description="Cookie value")
    secure: bool = Field(default=False, description="Secure flag")
    http_only: bool = Field(default=False, alias="httpOnly", description="HttpOnly flag")
    same_site: Optional[str] = Field(None, alias="sameSite", description="SameSite policy")
    expiration_date: Optional[float] = Field(
        None,
        alias="expirationDate",
        description="Expiration as epoch seconds; absent for session cookies"
    )
    store_id: Optional[str] = Field(None, alias="storeId", description="Cookie store ID")
    host_only: bool = Field(default=False, alias="hostOnly", description="Host-only flag")

    @property
    def key(self) -> str:
        """Identity key used for scanning, cooldown and dedup state."""
        return cookie_key(self)

    @property
    def is_session(self) -> bool:
        """Session cookies carry no expiration date."""
        return not self.expiration_date

    @property
    def url(self) -> str:
        """URL the cookie belongs to, used when writing it back."""
        return cookie_url(self)

    def to_snapshot(self) -> Dict[str, Any]:
        """Serialize in browser API shape for persisted blobs."""
        return self.model_dump(by_alias=True)


class CookieChangeEvent(BaseModel):
    """A cookie store change notification."""
    cookie: Cookie = Field(..., description="Cookie that changed")
    removed: bool = Field(default=False, description="Whether the cookie was removed")
    cause: Optional[str] = Field(None, description="Store-reported change cause")


def cookie_key(cookie: Cookie) -> str:
    """Build the `name;domain;path` identity key."""
    return f"{cookie.name};{cookie.domain};{cookie.path}"


def cookie_url(cookie: Cookie) -> str:
    """Build the URL a cookie is scoped to."""
    domain = (cookie.domain or "").lstrip(".")
    path = cookie.path or "/"
    scheme = "https://" if cookie.secure else "http://"
    return f"{scheme}{domain}{path}"
