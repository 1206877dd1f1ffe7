"""Tests for package provider."""

import subprocess

import pytest
from unittest.mock import AsyncMock

from hostprov.errors import PackageInstallError
from hostprov.models.package import PackageSet
from hostprov.providers.base import ProviderStatus
from hostprov.providers.packages import PackageProvider
from hostprov.utils.command import CommandResult


def dpkg_output(installed):
    return "".join(f"{name}\tinstall ok installed\n" for name in installed)


class FakeApt:
    """Simulates dpkg-query and apt-get on a set of installed packages."""

    def __init__(self, installed, install_failures=0):
        self.installed = set(installed)
        self.install_failures = install_failures
        self.commands = []

    async def run(self, cmd, check=True, timeout=None, **kwargs):
        self.commands.append(cmd)
        if cmd[0] == "dpkg-query":
            names = [name for name in cmd[3:] if name in self.installed]
            return CommandResult(returncode=0, stdout=dpkg_output(names))
        if cmd[:3] == ["apt-get", "install", "-y"]:
            if self.install_failures:
                self.install_failures -= 1
                error = subprocess.CalledProcessError(100, cmd)
                error.stderr = "E: Unable to locate package\n"
                raise error
            self.installed.update(cmd[3:])
        return CommandResult(returncode=0)

    def ran(self, *prefix):
        return [cmd for cmd in self.commands if cmd[:len(prefix)] == list(prefix)]


@pytest.fixture
def provider(config, registry):
    provider = PackageProvider()
    provider.runner = registry.runner
    provider.config = config.packages
    return provider


@pytest.mark.asyncio
class TestPackageProvider:
    """Test package provider."""

    async def test_installed_parses_dpkg_status(self, provider, runner):
        runner.run.return_value = CommandResult(
            returncode=1,
            stdout="jq\tinstall ok installed\ncurl\tdeinstall ok config-files\nlibc6:arm64\tinstall ok installed\n",
        )

        found = await provider.installed(PackageSet(["jq", "curl", "libc6", "nosuch"]))

        assert found == {"jq", "libc6"}
        assert runner.run.call_args.kwargs["check"] is False

    async def test_already_installed_is_noop(self, provider, runner):
        apt = FakeApt(installed=["jq", "curl"])
        runner.run.side_effect = apt.run

        result = await provider.install(PackageSet(["jq", "curl"]))

        assert result.installed == []
        assert result.already_present == ["jq", "curl"]
        assert apt.ran("apt-get") == []

    async def test_installs_only_missing(self, provider, runner):
        apt = FakeApt(installed=["jq"])
        runner.run.side_effect = apt.run

        result = await provider.install(PackageSet(["jq", "curl", "dbus"]))

        assert result.installed == ["curl", "dbus"]
        assert apt.ran("apt-get", "install", "-y") == [["apt-get", "install", "-y", "curl", "dbus"]]
        assert apt.ran("apt-get", "update") == [["apt-get", "update"]]

    async def test_second_run_converges(self, provider, runner):
        apt = FakeApt(installed=[])
        runner.run.side_effect = apt.run
        packages = PackageSet(["jq", "curl"])

        await provider.install(packages)
        second = await provider.install(packages)

        assert second.installed == []
        assert len(apt.ran("apt-get", "install", "-y")) == 1
        assert await provider.status(packages) == ProviderStatus.PRESENT

    async def test_repair_pass_then_success(self, provider, runner):
        apt = FakeApt(installed=[], install_failures=1)
        runner.run.side_effect = apt.run

        result = await provider.install(PackageSet(["mosquitto"]))

        assert result.repaired
        assert result.installed == ["mosquitto"]
        assert apt.ran("dpkg", "--configure", "-a")
        assert apt.ran("apt-get", "install", "-f", "-y")

    async def test_failure_after_repair_names_packages(self, provider, runner):
        apt = FakeApt(installed=["jq"], install_failures=2)
        runner.run.side_effect = apt.run

        with pytest.raises(PackageInstallError) as exc_info:
            await provider.install(PackageSet(["jq", "mosquitto", "mosquitto-clients"]))

        assert exc_info.value.packages == ["mosquitto", "mosquitto-clients"]
        assert exc_info.value.exit_code == 2
        assert "Unable to locate package" in str(exc_info.value)

    async def test_timeout_is_install_error(self, provider, runner):
        async def run(cmd, **kwargs):
            if cmd[0] == "dpkg-query":
                return CommandResult(returncode=0)
            raise subprocess.TimeoutExpired(cmd, 600)

        runner.run.side_effect = run

        with pytest.raises(PackageInstallError) as exc_info:
            await provider.install(PackageSet(["jq"]))

        assert exc_info.value.packages == ["jq"]

    async def test_absent_removes_installed_only(self, provider, runner):
        apt = FakeApt(installed=["jq"])
        runner.run.side_effect = apt.run

        await provider.absent(PackageSet(["jq", "curl"]))

        assert apt.ran("apt-get", "remove") == [["apt-get", "remove", "-y", "jq"]]
