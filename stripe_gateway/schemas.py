"""Shapes of the Stripe payloads the gateway reads.

Anything outside these shapes is rejected at the translation boundary
instead of being read field by field.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class RemoteError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int
    message: str = ""
    errors: List["RemoteError"] = []

    def deep_all(self) -> List["RemoteError"]:
        found = [self]
        for nested in self.errors:
            found.extend(nested.deep_all())
        return found


class RemotePayload(BaseModel):
    """A charge or refund result."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    status: Optional[str] = None
    errors: List[RemoteError] = []

    def deep_errors(self) -> List[RemoteError]:
        found = []
        for error in self.errors:
            found.extend(error.deep_all())
        return found


class RemoteCard(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    object: str = "card"
    brand: str
    last4: str
    exp_month: int
    exp_year: int


class RemoteCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None


class RemoteSourceList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[dict] = []


class RemoteBalance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    livemode: bool
