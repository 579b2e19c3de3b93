"""Reconnection token for previously discovered glasses."""

from __future__ import annotations

import json
from dataclasses import dataclass

from ..exceptions import SerializationError


@dataclass(frozen=True, slots=True)
class SerializedGlasses:
    """Identity needed to reconnect to glasses without scanning for their name.

    Encoded as JSON ``{"id": ..., "name": ..., "manId": ...}`` where ``id`` is
    the BLE address (or platform identifier) and ``manId`` the advertised
    manufacturer data as a hex string.
    """

    identifier: str
    name: str
    manufacturer_id: str

    def to_json(self) -> dict[str, str]:
        return {"id": self.identifier, "name": self.name, "manId": self.manufacturer_id}

    def serialize(self) -> bytes:
        """Encode the token as UTF-8 JSON bytes."""
        return json.dumps(self.to_json()).encode("utf-8")

    @classmethod
    def unserialize(cls, data: bytes | str) -> SerializedGlasses:
        """Decode a token produced by :meth:`serialize`.

        Raises:
            SerializationError: If the token is not valid JSON or lacks a field
        """
        try:
            raw = json.loads(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid glasses token: {e}") from e

        if not isinstance(raw, dict):
            raise SerializationError("Glasses token must be a JSON object")

        try:
            values = (raw["id"], raw["name"], raw["manId"])
        except KeyError as e:
            raise SerializationError(f"Glasses token missing field {e}") from e

        if not all(isinstance(value, str) for value in values):
            raise SerializationError("Glasses token fields must be strings")
        return cls(*values)
