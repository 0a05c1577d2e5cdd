"""Wire envelopes exchanged between execution contexts.

Every cross-context message is ``{type, requestId?, ...payload}``. Replies
reuse the request type with a ``_RESULT`` suffix and carry
``{success, error?, code?, ...data}``.
"""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field

from wallet_bridge.models.base import BridgeBaseModel
from wallet_bridge.models.enums import result_type


class BridgeMessage(BridgeBaseModel):
    """Inbound message envelope with arbitrary payload fields.

    Example:
        >>> msg = BridgeMessage.model_validate({"type": "WB_CONNECT", "requestId": "r1", "mode": "demo"})
        >>> msg.request_id, msg.payload["mode"]
        ('r1', 'demo')
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    type: str = Field(min_length=1)
    request_id: str | None = Field(default=None, alias="requestId")

    @property
    def payload(self) -> dict[str, Any]:
        """Extra fields beyond ``type`` and ``requestId``."""
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)

    def to_wire(self) -> dict[str, Any]:
        wire = self.model_dump(by_alias=True)
        if wire.get("requestId") is None:
            wire.pop("requestId", None)
        return wire


class ResultMessage(BridgeBaseModel):
    """Reply to a dispatched message."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    type: str
    request_id: str | None = Field(default=None, alias="requestId")
    success: bool
    error: str | None = None
    code: int | None = None

    @classmethod
    def for_request(
        cls, message: BridgeMessage, fields: dict[str, Any] | None = None
    ) -> ResultMessage:
        """Build the ``*_RESULT`` reply to ``message`` from handler output fields."""
        data = {"success": True, **(fields or {})}
        data.pop("type", None)
        data.pop("requestId", None)
        data.pop("request_id", None)
        return cls.model_validate(
            {"type": result_type(message.type), "requestId": message.request_id, **data}
        )

    def with_request_id(self, request_id: str | None) -> ResultMessage:
        return self.model_copy(update={"request_id": request_id})

    @property
    def data(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_wire(self) -> dict[str, Any]:
        wire = self.model_dump(by_alias=True)
        for optional in ("requestId", "error", "code"):
            if wire.get(optional) is None:
                wire.pop(optional, None)
        return wire
