"""
Pydantic schemas for request validation (Http/Requests).
Bodies are lenient on purpose: a bad pincode is a null estimate and a missing
AWB is a 400 from the controller, not a 422 from the framework.
"""
from typing import Optional, Union

from pydantic import BaseModel, field_validator


def _strip_to_str(v) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class EddRequest(BaseModel):
    pincode: Optional[Union[str, int]] = None

    @field_validator("pincode", mode="before")
    @classmethod
    def normalize_pincode(cls, v):
        return _strip_to_str(v)


class TrackRequest(BaseModel):
    awb: Optional[Union[str, int]] = None

    @field_validator("awb", mode="before")
    @classmethod
    def normalize_awb(cls, v):
        return _strip_to_str(v)
