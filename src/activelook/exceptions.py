"""Exceptions raised by the ActiveLook BLE protocol package."""

from __future__ import annotations


class ActiveLookError(Exception):
    """Base exception for all ActiveLook errors."""


class BLEConnectionError(ActiveLookError):
    """BLE link could not be established or was lost."""


class BLETimeoutError(ActiveLookError):
    """BLE operation did not complete in time."""


class DeviceNotConnected(ActiveLookError):
    """Operation requires connected glasses."""


class ProtocolFormatError(ActiveLookError):
    """Malformed command or response frame (header, footer, length, overflow)."""


class QueryTimeout(ActiveLookError):
    """No response was received for an outstanding query."""

    def __init__(self, command_id: int, query_id: int, timeout: float):
        self.command_id = command_id
        self.query_id = query_id
        self.timeout = timeout
        super().__init__(
            f"No response to command 0x{command_id:02x} "
            f"(query id {query_id}) within {timeout}s"
        )


class InitializationError(ActiveLookError):
    """Glasses could not be initialized after connection."""


class InitializationTimeout(InitializationError):
    """Glasses did not become ready before the initialization timeout."""


class SerializationError(ActiveLookError):
    """Serialized glasses token could not be encoded or decoded."""


class UpdateError(ActiveLookError):
    """Base exception for the version check / download / update pipeline."""


class NetworkUnavailable(UpdateError):
    """Network is not reachable, no update can be performed."""


class ClientError(UpdateError):
    """Request failed before any HTTP response was received."""


class ServerError(UpdateError):
    """Update server answered with a non-2xx status."""

    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(f"Server error {status} for {url}")


class InvalidToken(ServerError):
    """Update server rejected the access token (HTTP 403)."""


class DecodeError(UpdateError):
    """Downloaded payload does not parse as the expected format."""


class VersionCheckError(UpdateError):
    """Installed or remote version could not be determined."""


class FirmwareUpdateError(UpdateError):
    """SUOTA firmware transfer failed at a given stage."""

    def __init__(self, stage: str, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"Firmware update failed during {stage}: {detail}")


class LowBattery(UpdateError):
    """Battery level is too low to update the glasses."""

    def __init__(self, level: int | None, threshold: int):
        self.level = level
        self.threshold = threshold
        super().__init__(f"Battery level {level}% is below {threshold}%")


class UpdateForbidden(UpdateError):
    """The embedding application refused the update."""


class DowngradeForbidden(UpdateError):
    """Installed firmware is newer than this library supports."""


class AbortedByCaller(UpdateError):
    """The update was aborted by an explicit abort() call."""
