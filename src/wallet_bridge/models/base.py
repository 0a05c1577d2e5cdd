"""Base Pydantic model configuration for wallet bridge models.

All models inherit from BridgeBaseModel:
- Immutability (frozen=True) so a value never changes after it crosses a context
- Strict validation (extra="forbid") to catch typos and invalid fields
- Field population by name or alias (wire names are camelCase)
"""

from pydantic import BaseModel, ConfigDict


class BridgeBaseModel(BaseModel):
    """Base model for all wallet bridge entities.

    Example:
        >>> class Probe(BridgeBaseModel):
        ...     name: str
        >>> Probe(name="x").name
        'x'
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        use_enum_values=False,
        validate_default=True,
    )
