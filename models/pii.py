"""
PII scanning data models.
"""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class ScanMode(str, Enum):
    """PII scan mode for cookie values."""
    OFF = "off"
    SIMPLE = "simple"
    DECODE_BASE64 = "decode_base64"


class Severity(str, Enum):
    """Finding severity enumeration."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FindingSource(str, Enum):
    """Which text a finding was matched in."""
    ORIGINAL = "original"
    DECODED = "decoded"


SEVERITY_WEIGHT = {
    Severity.CRITICAL.value: 3,
    Severity.HIGH.value: 2,
    Severity.MEDIUM.value: 1,
    Severity.LOW.value: 0,
}


class PIIFinding(BaseModel):
    """A single PII match that passed its pattern's validator."""
    model_config = ConfigDict(use_enum_values=True, frozen=True)

    label: str = Field(..., description="Human readable pattern label")
    value: str = Field(..., description="Exact matched text")
    severity: Severity = Field(..., description="Finding severity")
    source: FindingSource = Field(..., description="Original or decoded text")


class ScanResult(BaseModel):
    """Outcome of scanning one cookie value."""
    found_pii: List[PIIFinding] = Field(default_factory=list, description="Findings in discovery order")
    was_decoded: bool = Field(default=False, description="Whether base64 decoding succeeded")
    decoded_text: Optional[str] = Field(None, description="Decoded text if decoding succeeded")
    original_text: Optional[str] = Field(None, description="Text that was submitted for scanning")

    @property
    def has_findings(self) -> bool:
        return bool(self.found_pii)
