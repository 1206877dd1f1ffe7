"""Tests for the service catalog and presets."""

import pytest

from hostprov.provision.catalog import PRESETS, build_services, get_preset, service_names


def test_catalog_order():
    assert service_names() == ["homeassistant", "mosquitto", "nodered", "portainer"]
    assert [s.name for s in build_services()] == service_names()


def test_selection_keeps_catalog_order():
    specs = build_services(selection=["portainer", "mosquitto", "mosquitto"])

    assert [s.name for s in specs] == ["mosquitto", "portainer"]


def test_unknown_service():
    with pytest.raises(ValueError, match="zigbee2mqtt"):
        build_services(selection=["zigbee2mqtt"])


def test_unknown_preset():
    with pytest.raises(ValueError):
        get_preset("tiny")


def test_mosquitto_entry():
    mosquitto = build_services(selection=["mosquitto"])[0]

    assert [p.to_arg() for p in mosquitto.ports] == ["1883:1883/tcp"]
    assert mosquitto.credential.name == "mqtt"
    assert mosquitto.health.protocol == "mqtt"
    assert mosquitto.health.port == 1883
    assert mosquitto.host_units == ["mosquitto.service"]


def test_lowmem_preset_sets_limits_and_quiet_logs():
    specs = {s.name: s for s in build_services(preset="lowmem")}

    assert specs["mosquitto"].resources.memory == "64m"
    assert specs["mosquitto"].settings["log_types"] == "error,warning"
    assert specs["nodered"].settings["log_level"] == "warn"
    assert specs["nodered"].settings["ui_port"] == "1880"
    assert PRESETS["lowmem"]["config"]["python_env"]["enabled"] is False


def test_overrides_apply_after_preset():
    specs = build_services(
        preset="lowmem",
        selection=["mosquitto"],
        overrides={"mosquitto": {"resources": {"memory": "128m"}, "image": "eclipse-mosquitto:2"}},
    )

    assert specs[0].resources.memory == "128m"
    assert specs[0].resources.cpus == 0.5
    assert specs[0].image == "eclipse-mosquitto:2"


def test_custom_service_from_overrides():
    specs = build_services(
        selection=["mosquitto", "zigbee2mqtt"],
        overrides={"zigbee2mqtt": {"image": "koenkk/zigbee2mqtt", "ports": [{"host": 8080, "container": 8080}]}},
    )

    assert [s.name for s in specs] == ["mosquitto", "zigbee2mqtt"]


def test_build_does_not_mutate_catalog():
    build_services(preset="lowmem")

    assert build_services()[1].resources.memory is None
