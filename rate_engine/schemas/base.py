"""
Base Schema Classes for Pydantic Models

RULE: Schemas that are built from ORM rows (rate card and pincode
snapshots) MUST inherit from BaseSnapshotSchema. Schemas that accept
caller input inherit from BaseInputSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseSnapshotSchema(BaseModel):
    """
    Base class for immutable values read from ORM models.

    Features:
    - from_attributes for ORM compatibility
    - frozen, so a snapshot cannot drift after it was priced against
    """
    model_config = ConfigDict(
        from_attributes=True,
        frozen=True,
        populate_by_name=True,
    )


class BaseInputSchema(BaseModel):
    """
    Base class for caller input.

    Unknown fields are ignored (forward compatibility) and strings are
    stripped before validation.
    """
    model_config = ConfigDict(
        extra='ignore',
        str_strip_whitespace=True,
    )
