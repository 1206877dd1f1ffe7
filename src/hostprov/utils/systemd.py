"""Systemd utilities and DBus integration."""

import logging
from typing import Any, List, Optional

from dbus_next.aio import MessageBus
from dbus_next import BusType

from hostprov.utils.command import CommandRunner


logger = logging.getLogger(__name__)


class SystemdDBus:
    """DBus interface to systemd with a systemctl fallback."""

    def __init__(self, runner: CommandRunner):
        """Initialize DBus wrapper."""
        self.runner = runner
        self.bus: Optional[MessageBus] = None
        self.systemd = None

    async def connect(self):
        """Connect to system DBus.

        Failure leaves the wrapper in CLI-fallback mode.
        """
        try:
            self.bus = await MessageBus(bus_type=BusType.SYSTEM).connect()

            introspection = await self.bus.introspect(
                "org.freedesktop.systemd1",
                "/org/freedesktop/systemd1"
            )
            self.systemd = self.bus.get_proxy_object(
                "org.freedesktop.systemd1",
                "/org/freedesktop/systemd1",
                introspection
            ).get_interface("org.freedesktop.systemd1.Manager")

            logger.debug("Connected to systemd DBus")

        except Exception as e:
            logger.warning(f"DBus unavailable, using systemctl: {e}")
            self.bus = None
            self.systemd = None

    async def disconnect(self):
        """Disconnect from DBus."""
        if self.bus:
            self.bus.disconnect()
            self.bus = None
            self.systemd = None

    async def _execute_fallback(
        self,
        dbus_method_name: str,
        dbus_args: List[Any],
        cli_cmd: List[str],
        success_msg: str,
        error_action: str
    ):
        """Execute a DBus method with CLI fallback."""
        if self.systemd:
            try:
                method = getattr(self.systemd, dbus_method_name)
                await method(*dbus_args)
                logger.debug(success_msg)
                return
            except Exception as e:
                logger.error(f"Failed to {error_action} via DBus: {e}")

        await self.runner.run(cli_cmd)

    async def start_unit(self, unit_name: str):
        """Start a systemd unit."""
        await self._execute_fallback(
            "call_start_unit",
            [unit_name, "replace"],
            ["systemctl", "start", unit_name],
            f"Started unit {unit_name}",
            "start unit"
        )

    async def stop_unit(self, unit_name: str):
        """Stop a systemd unit."""
        await self._execute_fallback(
            "call_stop_unit",
            [unit_name, "replace"],
            ["systemctl", "stop", unit_name],
            f"Stopped unit {unit_name}",
            "stop unit"
        )

    async def enable_unit(self, unit_name: str):
        """Enable a systemd unit."""
        await self._execute_fallback(
            "call_enable_unit_files",
            [[unit_name], False, True],
            ["systemctl", "enable", unit_name],
            f"Enabled unit {unit_name}",
            "enable unit"
        )

    async def disable_unit(self, unit_name: str):
        """Disable a systemd unit."""
        await self._execute_fallback(
            "call_disable_unit_files",
            [[unit_name], False],
            ["systemctl", "disable", unit_name],
            f"Disabled unit {unit_name}",
            "disable unit"
        )

    async def get_unit_state(self, unit_name: str) -> str:
        """Get the active state of a unit."""
        if self.systemd:
            try:
                unit_path = await self.systemd.call_load_unit(unit_name)

                introspection = await self.bus.introspect(
                    "org.freedesktop.systemd1",
                    unit_path
                )
                unit_proxy = self.bus.get_proxy_object(
                    "org.freedesktop.systemd1",
                    unit_path,
                    introspection
                ).get_interface("org.freedesktop.DBus.Properties")

                state = await unit_proxy.call_get(
                    "org.freedesktop.systemd1.Unit",
                    "ActiveState"
                )
                return state.value

            except Exception as e:
                logger.debug(f"Failed to get unit state via DBus: {e}")

        result = await self.runner.run(
            ["systemctl", "is-active", unit_name],
            check=False,
        )
        return result.stdout.strip()
