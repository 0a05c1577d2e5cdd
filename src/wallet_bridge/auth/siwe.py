"""Sign-In With Ethereum (EIP-4361) message text.

Builds and parses the human-readable message a wallet signs. Parsing is a
structural check only; signatures are verified by the remote API.

Example:
    >>> fields = SiweMessage(
    ...     domain="example.com",
    ...     address="0x1111111111111111111111111111111111111111",
    ...     uri="https://example.com",
    ...     chain_id=1,
    ...     nonce="abc12345",
    ...     issued_at="2024-01-01T00:00:00Z",
    ... )
    >>> parse_siwe_message(create_siwe_message(fields)) == fields
    True
"""

from __future__ import annotations

import re

from pydantic import Field, ValidationError

from wallet_bridge.errors import MessageValidationError
from wallet_bridge.models.base import BridgeBaseModel

HEADER_SUFFIX = " wants you to sign in with your Ethereum account:"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

_FIELD_LABELS = (
    ("uri", "URI"),
    ("version", "Version"),
    ("chain_id", "Chain ID"),
    ("nonce", "Nonce"),
    ("issued_at", "Issued At"),
    ("expiration_time", "Expiration Time"),
    ("not_before", "Not Before"),
    ("request_id", "Request ID"),
)
_LABEL_TO_FIELD = {label: name for name, label in _FIELD_LABELS}


class SiweMessage(BridgeBaseModel):
    """Fields of an EIP-4361 message."""

    domain: str = Field(min_length=1)
    address: str = Field(pattern=_ADDRESS_RE.pattern)
    statement: str | None = None
    uri: str = Field(min_length=1)
    version: str = "1"
    chain_id: int = Field(gt=0)
    nonce: str = Field(min_length=8, pattern=r"^[A-Za-z0-9]+$")
    issued_at: str
    expiration_time: str | None = None
    not_before: str | None = None
    request_id: str | None = None
    resources: tuple[str, ...] = ()


def create_siwe_message(fields: SiweMessage) -> str:
    """Render ``fields`` as EIP-4361 text."""
    lines = [f"{fields.domain}{HEADER_SUFFIX}", fields.address, ""]
    if fields.statement:
        lines.append(fields.statement)
    lines.append("")
    for name, label in _FIELD_LABELS:
        value = getattr(fields, name)
        if value is not None:
            lines.append(f"{label}: {value}")
    if fields.resources:
        lines.append("Resources:")
        lines.extend(f"- {resource}" for resource in fields.resources)
    return "\n".join(lines)


def parse_siwe_message(text: str) -> SiweMessage:
    """Parse EIP-4361 text.

    Raises:
        MessageValidationError: If the text is not a well-formed SIWE message
    """
    lines = text.split("\n")
    if len(lines) < 4 or not lines[0].endswith(HEADER_SUFFIX):
        raise MessageValidationError("not a SIWE message")

    values: dict[str, object] = {
        "domain": lines[0][: -len(HEADER_SUFFIX)],
        "address": lines[1].strip(),
    }
    statement: list[str] = []
    resources: list[str] = []
    in_resources = False
    for line in lines[2:]:
        if in_resources:
            if line.startswith("- "):
                resources.append(line[2:])
                continue
            raise MessageValidationError(f"unexpected line after Resources: {line!r}")
        if line == "Resources:":
            in_resources = True
            continue
        label, sep, value = line.partition(": ")
        if sep and label in _LABEL_TO_FIELD:
            values[_LABEL_TO_FIELD[label]] = value
        elif line and "uri" not in values:
            statement.append(line)
        elif line:
            raise MessageValidationError(f"unexpected line: {line!r}")

    if statement:
        values["statement"] = "\n".join(statement)
    values["resources"] = tuple(resources)
    try:
        return SiweMessage.model_validate(values)
    except ValidationError as exc:
        raise MessageValidationError(
            "invalid SIWE fields", {"errors": exc.errors(include_url=False)}
        ) from exc
