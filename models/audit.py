"""
Cookie change log data models.
"""

from typing import Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class ChangeCategory(str, Enum):
    """Kind of cookie change, derived from snapshot presence."""
    ADDITION = "addition"
    MODIFICATION = "modification"
    DELETION = "deletion"


class ChangeSource(str, Enum):
    """Who caused a cookie change."""
    USER = "user"
    WEBSITE = "website"


class CookieChange(BaseModel):
    """Before/after snapshots of a changed cookie."""
    before: Optional[Dict[str, Any]] = Field(None, description="Snapshot before the change")
    after: Optional[Dict[str, Any]] = Field(None, description="Snapshot after the change")


class AuditLogEntry(BaseModel):
    """One entry of the capped cookie change log."""
    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="Entry ID")
    timestamp: str = Field(..., description="ISO-8601 UTC timestamp")
    category: ChangeCategory = Field(..., description="Change category")
    source: ChangeSource = Field(default=ChangeSource.WEBSITE, description="Change source")
    cookie_name: str = Field(..., description="Cookie name")
    domain: str = Field(..., description="Cookie domain")
    change: CookieChange = Field(default_factory=CookieChange, description="Snapshots")


def derive_category(
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> ChangeCategory:
    """
    Derive the change category from snapshot presence only.

    Field values are never diffed: a write that leaves every field unchanged
    is still a modification.
    """
    if before is None and after is not None:
        return ChangeCategory.ADDITION
    if before is not None and after is None:
        return ChangeCategory.DELETION
    return ChangeCategory.MODIFICATION
