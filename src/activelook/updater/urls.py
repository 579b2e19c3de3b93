"""Update server URL builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlencode, urlunsplit

from ..models.enums import SoftwareClass
from ..models.firmware import FirmwareVersion


@dataclass(frozen=True, slots=True)
class UpdateServerConfig:
    """Location of the update catalog."""

    scheme: str = "http"
    host: str = "vps468290.ovh.net"
    port: int | None = None
    api_version: str = "v1"
    compatibility: str = "4"

    @property
    def netloc(self) -> str:
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class UpdaterURL:
    """Builds catalog and download URLs for one hardware id and access token.

    Catalog (history) URLs carry the installed firmware version as a filter:
    ``min-version`` for firmwares, ``max-version`` for configurations.
    """

    hardware: str
    token: str
    server: UpdateServerConfig = field(default_factory=UpdateServerConfig)

    def _path(self, software: SoftwareClass, *extra: str) -> str:
        parts = [self.server.api_version, software.value, self.hardware, self.token, *extra]
        return "/" + "/".join(parts)

    def _history_url(self, software: SoftwareClass, version: FirmwareVersion) -> str:
        tag = "min-version" if software == SoftwareClass.FIRMWARES else "max-version"
        query = urlencode([
            ("compatibility", self.server.compatibility),
            (tag, version.min_version),
        ])
        return urlunsplit((self.server.scheme, self.server.netloc, self._path(software), query, ""))

    def _download_url(self, software: SoftwareClass, api_path: str) -> str:
        path = self._path(software, api_path.lstrip("/"))
        return urlunsplit((self.server.scheme, self.server.netloc, path, "", ""))

    def firmware_history_url(self, version: FirmwareVersion) -> str:
        return self._history_url(SoftwareClass.FIRMWARES, version)

    def configuration_history_url(self, version: FirmwareVersion) -> str:
        return self._history_url(SoftwareClass.CONFIGURATIONS, version)

    def firmware_download_url(self, api_path: str) -> str:
        return self._download_url(SoftwareClass.FIRMWARES, api_path)

    def configuration_download_url(self, api_path: str) -> str:
        return self._download_url(SoftwareClass.CONFIGURATIONS, api_path)
