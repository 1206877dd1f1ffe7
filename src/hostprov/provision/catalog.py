"""Built-in service catalog and presets.

Each preset is a set of overrides on the same service table, replacing
what used to be separate installer variants that differed only in package
lists, resource limits and log verbosity.
"""

import copy
from typing import Any, Dict, List, Optional

from hostprov.models.service import ServiceSpec
from hostprov.utils.templates import merge_dicts


MOSQUITTO_CONF = """\
# Managed by hostprov, changes are overwritten on the next run.
listener {{ settings.listener_port }}
allow_anonymous false
password_file /mosquitto/config/password.txt
persistence true
persistence_location /mosquitto/data/
log_dest file /mosquitto/log/mosquitto.log
{% for log_type in settings.log_types.split(",") %}log_type {{ log_type }}
{% endfor %}"""

NODERED_SETTINGS = """\
// Managed by hostprov, changes are overwritten on the next run.
module.exports = {
    uiPort: process.env.PORT || {{ settings.ui_port }},
    flowFile: "flows.json",
    logging: {
        console: {
            level: "{{ settings.log_level }}",
            metrics: false,
            audit: false
        }
    },
    editorTheme: {
        projects: {
            enabled: false
        }
    }
};
"""

SERVICE_CATALOG: Dict[str, Dict[str, Any]] = {
    "homeassistant": {
        "image": "ghcr.io/home-assistant/home-assistant:stable",
        "network_mode": "host",
        "volumes": [
            {"source": "config", "target": "/config"},
            {"source": "/etc/localtime", "target": "/etc/localtime", "read_only": True},
        ],
        "directories": ["config"],
        "health": {"protocol": "http", "port": 8123, "path": "/", "expect_status": [200]},
    },
    "mosquitto": {
        "image": "eclipse-mosquitto:latest",
        "ports": [{"host": 1883, "container": 1883}],
        "volumes": [
            {"source": "config", "target": "/mosquitto/config"},
            {"source": "data", "target": "/mosquitto/data"},
            {"source": "log", "target": "/mosquitto/log"},
        ],
        "directories": ["config", "data", "log"],
        "config_files": [
            {"path": "config/mosquitto.conf", "template": MOSQUITTO_CONF},
        ],
        "credential": {"name": "mqtt", "password_file": "config/password.txt"},
        # The apt package pulled in for mosquitto_passwd starts a broker on 1883
        "host_units": ["mosquitto.service"],
        "settings": {"listener_port": "1883", "log_types": "error,warning,notice,information"},
        "health": {"protocol": "mqtt", "port": 1883},
    },
    "nodered": {
        "image": "nodered/node-red:latest",
        "user": "0:0",
        "ports": [{"host": 1880, "container": 1880}],
        "volumes": [{"source": "data", "target": "/data"}],
        "directories": ["data"],
        "config_files": [
            {"path": "data/settings.js", "template": NODERED_SETTINGS},
        ],
        "settings": {"ui_port": "1880", "log_level": "info"},
        "health": {"protocol": "http", "port": 1880, "path": "/", "expect_status": [200]},
    },
    "portainer": {
        "image": "portainer/portainer-ce:latest",
        "ports": [
            {"host": 9000, "container": 9000},
            {"host": 9443, "container": 9443},
        ],
        "volumes": [
            {"source": "data", "target": "/data"},
            {"source": "/var/run/docker.sock", "target": "/var/run/docker.sock"},
        ],
        "directories": ["data"],
        "health": {"protocol": "http", "port": 9000, "path": "/", "expect_status": [200]},
    },
}

PRESETS: Dict[str, Dict[str, Any]] = {
    "standard": {
        "description": "All services with default limits",
        "services": {},
        "config": {},
    },
    "lowmem": {
        "description": "Tight memory limits and quiet logs for 2GB boards",
        "services": {
            "homeassistant": {"resources": {"memory": "768m", "cpus": 2.0}},
            "mosquitto": {
                "resources": {"memory": "64m", "cpus": 0.5},
                "settings": {"log_types": "error,warning"},
            },
            "nodered": {
                "resources": {"memory": "256m", "cpus": 1.0},
                "settings": {"log_level": "warn"},
            },
            "portainer": {"resources": {"memory": "128m", "cpus": 0.5}},
        },
        "config": {
            "host": {"min_ram_mb": 2048},
            "swap": {"size_mb": 2048},
            "python_env": {"enabled": False},
        },
    },
    "verbose": {
        "description": "Debug logging for troubleshooting",
        "services": {
            "mosquitto": {"settings": {"log_types": "all"}},
            "nodered": {"settings": {"log_level": "debug"}},
        },
        "config": {"log_level": "DEBUG"},
    },
}


def service_names() -> List[str]:
    return list(SERVICE_CATALOG)


def get_preset(name: str) -> Dict[str, Any]:
    if name not in PRESETS:
        raise ValueError(f"Unknown preset {name!r}, expected one of: {', '.join(PRESETS)}")
    return PRESETS[name]


def build_services(
    preset: str = "standard",
    selection: Optional[List[str]] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[ServiceSpec]:
    """Resolve the selected services from catalog, preset and overrides.

    Order follows the catalog so the broker starts before its consumers.
    """
    preset_overrides = get_preset(preset)["services"]
    overrides = overrides or {}

    wanted = service_names() if selection is None else list(dict.fromkeys(selection))
    unknown = [name for name in wanted if name not in SERVICE_CATALOG and name not in overrides]
    if unknown:
        raise ValueError(f"Unknown service(s): {', '.join(unknown)}")

    ordered = [name for name in SERVICE_CATALOG if name in wanted]
    # Services defined only through overrides go last
    ordered += [name for name in wanted if name not in SERVICE_CATALOG]

    specs = []
    for name in ordered:
        data = copy.deepcopy(SERVICE_CATALOG.get(name, {}))
        data = merge_dicts(data, preset_overrides.get(name, {}))
        data = merge_dicts(data, overrides.get(name, {}))
        specs.append(ServiceSpec(name=name, **data))
    return specs
