"""Firmware and configuration updates."""

from .coordinator import GlassesUpdater, UpdateParameters, reboot_delay
from .downloader import Downloader
from .firmware_updater import FirmwareUpdater
from .urls import UpdaterURL, UpdateServerConfig
from .version_checker import VersionChecker, VersionCheckResult, VersionStatus

__all__ = [
    "Downloader",
    "FirmwareUpdater",
    "GlassesUpdater",
    "UpdateParameters",
    "UpdateServerConfig",
    "UpdaterURL",
    "VersionCheckResult",
    "VersionChecker",
    "VersionStatus",
    "reboot_delay",
]
