"""Pydantic schemas for storage-node responses."""

from pydantic import BaseModel, field_validator


class ReferenceResponse(BaseModel):
    """Response model for chunk and data uploads."""
    reference: str

    @field_validator('reference')
    @classmethod
    def reference_is_hex(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) != 64:
            raise ValueError(f"reference must be 64 hex characters, got {len(value)}")
        bytes.fromhex(value)
        return value
