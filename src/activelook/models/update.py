"""Update session state reported to the embedding application."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .enums import PublicUpdateState, UpdateState

_PUBLIC_STATES = {
    UpdateState.DOWNLOADING_FW: PublicUpdateState.DOWNLOADING_FIRMWARE,
    UpdateState.UPDATING_FW: PublicUpdateState.UPDATING_FIRMWARE,
    UpdateState.REBOOTING: PublicUpdateState.UPDATING_FIRMWARE,
    UpdateState.DOWNLOADING_CONFIG: PublicUpdateState.DOWNLOADING_CONFIGURATION,
    UpdateState.UPDATING_CONFIG: PublicUpdateState.UPDATING_CONFIGURATION,
    UpdateState.LOW_BATTERY: PublicUpdateState.ERROR_UPDATE_FAIL_LOW_BATTERY,
    UpdateState.UPDATE_FAILED: PublicUpdateState.ERROR_UPDATE_FAIL,
}


@dataclass(frozen=True, slots=True)
class GlassesUpdate:
    """Immutable snapshot of an update session.

    A new snapshot is produced with :meth:`evolve` on every phase or
    progress change and handed to the progress callback.
    """

    address: str
    state: UpdateState = UpdateState.NOT_INITIALIZED
    progress: float = 0.0
    battery_level: int | None = None
    source_firmware_version: str = ""
    target_firmware_version: str = ""
    source_configuration_version: str = ""
    target_configuration_version: str = ""
    public_state_override: PublicUpdateState | None = None

    @property
    def public_state(self) -> PublicUpdateState | None:
        """Coarse state for the application, None for internal-only phases."""
        if self.public_state_override is not None:
            return self.public_state_override
        return _PUBLIC_STATES.get(self.state)

    def evolve(self, **changes) -> GlassesUpdate:
        return replace(self, **changes)

    def __str__(self) -> str:
        return f"state: {self.state.value} - progress: {self.progress:.1f}"
