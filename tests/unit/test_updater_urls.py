"""Test update server URL construction."""

from activelook.models.firmware import FirmwareVersion
from activelook.updater.urls import UpdaterURL, UpdateServerConfig


def test_firmware_history_url() -> None:
    urls = UpdaterURL("ALK01A", "secret")

    assert urls.firmware_history_url(FirmwareVersion(4, 6, 2)) == (
        "http://vps468290.ovh.net/v1/firmwares/ALK01A/secret?compatibility=4&min-version=4.6.2"
    )


def test_configuration_history_url() -> None:
    urls = UpdaterURL("ALK01A", "secret")

    assert urls.configuration_history_url(FirmwareVersion(4, 6, 2)) == (
        "http://vps468290.ovh.net/v1/configurations/ALK01A/secret?compatibility=4&max-version=4.6.2"
    )


def test_download_urls_strip_leading_slashes() -> None:
    urls = UpdaterURL("ALK01A", "secret")

    assert urls.firmware_download_url("/4/6/3") == (
        "http://vps468290.ovh.net/v1/firmwares/ALK01A/secret/4/6/3"
    )
    assert urls.configuration_download_url("ALooK/12") == (
        "http://vps468290.ovh.net/v1/configurations/ALK01A/secret/ALooK/12"
    )


def test_custom_server() -> None:
    server = UpdateServerConfig(scheme="https", host="updates.example.org", port=8443, api_version="v2")
    urls = UpdaterURL("ALK02", "t0k", server)

    assert urls.firmware_history_url(FirmwareVersion(5, 0, 0)) == (
        "https://updates.example.org:8443/v2/firmwares/ALK02/t0k?compatibility=4&min-version=5.0.0"
    )
