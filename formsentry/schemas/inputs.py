"""
FormSentry Input Schemas

This module defines Pydantic V2 models for:
- The immutable request snapshot handed to the scoring engine
- Client-recorded behavior events (decoded from the behavior trace)
- Operator requests to the admin endpoints
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Behavior Trace Events
# =============================================================================

# Coordinates and timestamps must fit a signed 64-bit integer
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class BehaviorEvent(BaseModel):
    """
    Single interaction event recorded by the client script.

    Pointer movement carries x/y. Key presses and clicks carry
    a presence flag instead and no position.
    """
    t: int = Field(..., ge=INT64_MIN, le=INT64_MAX, description="Event timestamp in client epoch milliseconds")
    x: Optional[int] = Field(None, ge=INT64_MIN, le=INT64_MAX, description="Pointer X coordinate")
    y: Optional[int] = Field(None, ge=INT64_MIN, le=INT64_MAX, description="Pointer Y coordinate")
    key: Optional[Any] = Field(None, description="Key press marker")
    click: Optional[bool] = Field(None, description="Click marker")

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None


# =============================================================================
# Request Snapshot (Root Model)
# =============================================================================

class RequestSnapshot(BaseModel):
    """
    Read-only capture of one inbound form submission.

    Form and query mappings keep every submitted value per key, the way
    a classic form parser does. Lookups through form_value/query_value
    return the first value only.
    """
    model_config = ConfigDict(frozen=True)

    origin: str = Field(..., description="Client network identity (IP-like)")
    user_agent: str = Field("", description="Raw User-Agent header")
    referer: str = Field("", description="Raw Referer header")
    host: str = Field("", description="Declared Host header")
    method: str = Field("POST", description="HTTP method")
    path: str = Field("/", description="Request path")
    query: Dict[str, List[str]] = Field(default_factory=dict, description="Query parameters")
    form: Dict[str, List[str]] = Field(default_factory=dict, description="Submitted form fields")
    cookie: Optional[str] = Field(
        None,
        description="Value of the js_captcha cookie, None when the cookie is absent"
    )
    accept: str = Field("", description="Accept header")
    accept_language: str = Field("", description="Accept-Language header")
    sec_fetch_site: str = Field("", description="Sec-Fetch-Site header")
    sec_fetch_mode: str = Field("", description="Sec-Fetch-Mode header")

    def form_value(self, key: str) -> str:
        """First submitted value for a form key, or an empty string."""
        values = self.form.get(key)
        return values[0] if values else ""

    def query_value(self, key: str) -> str:
        """First value for a query parameter, or an empty string."""
        values = self.query.get(key)
        return values[0] if values else ""


# =============================================================================
# Admin Requests
# =============================================================================

class KeywordUpdate(BaseModel):
    """Spam keywords to add to the shared keyword set."""
    keywords: List[str] = Field(..., min_length=1, description="Keywords, matched case-insensitively")


class ConfigUpdate(BaseModel):
    """New value for a runtime config flag."""
    value: bool = Field(..., description="Flag value")
