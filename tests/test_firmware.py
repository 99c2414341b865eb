from __future__ import annotations

from wledlink.core import determine_asset_name, select_asset
from wledlink.core.firmware import asset_name_by_platform, asset_name_by_release
from wledlink.models import DeviceInfo


def test_release_naming():
    assert asset_name_by_release("v0.15.0", "ESP32") == "WLED_0.15.0_ESP32.bin"
    name = asset_name_by_release("0.15.0", "ESP8266_160")
    assert name == "WLED_0.15.0_ESP8266_160.bin"
    assert asset_name_by_release("v0.15.0", None) is None
    assert asset_name_by_release("", "ESP32") is None


def test_platform_naming():
    assert asset_name_by_platform("v0.14.4", "esp8266") == "WLED_0.14.4_ESP8266.bin"
    assert asset_name_by_platform("v0.14.4", "esp32-s3") is None
    assert asset_name_by_platform("v0.14.4", None) is None


def test_determine_asset_name_prefers_release():
    new = DeviceInfo(ver="0.15.0", arch="esp32", release="ESP32_V4")
    old = DeviceInfo(ver="0.14.4", arch="esp32")
    assert determine_asset_name("v0.15.0", new) == "WLED_0.15.0_ESP32_V4.bin"
    assert determine_asset_name("v0.14.4", old) == "WLED_0.14.4_ESP32.bin"
    assert determine_asset_name("v0.14.4", None) is None


def test_select_asset_falls_back_to_platform():
    info = DeviceInfo(ver="0.15.0", arch="esp8266", release="ESP8266_custom")
    available = ["WLED_0.15.0_ESP32.bin", "WLED_0.15.0_ESP8266.bin"]
    assert select_asset("v0.15.0", info, available) == "WLED_0.15.0_ESP8266.bin"
    assert select_asset("v0.15.0", info, ["WLED_0.15.0_ESP32.bin"]) is None
