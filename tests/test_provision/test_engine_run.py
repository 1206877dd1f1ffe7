"""Tests for the provisioning engine."""

import stat
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from hostprov.checks.health import VerificationReport
from hostprov.checks.preconditions import PreconditionChecker
from hostprov.errors import EngineUnavailable, OrchestrationError, PackageInstallError, VerificationTimeout
from hostprov.models.host import HostProfile
from hostprov.models.package import PackageSet
from hostprov.models.report import EndpointOutcome, RunState, StepStatus
from hostprov.providers.configurator import ServiceConfigProvider
from hostprov.providers.packages import PackageInstallResult
from hostprov.providers.secrets import SecretsProvider
from hostprov.provision.catalog import build_services
from hostprov.provision.engine import ProvisionEngine, provision
from hostprov.utils.command import CommandResult

SWAPS_HEADER = "Filename\t\t\t\tType\t\tSize\t\tUsed\t\tPriority\n"


class FakeRegistry:
    """Registry holding prepared providers."""

    def __init__(self, runner, providers):
        self.runner = runner
        self._providers = providers

    def get_provider(self, name):
        return self._providers.get(name)


async def host_commands(cmd, **kwargs):
    """Runner side effect for swap tools, the password tool and `hostname -I`."""
    if cmd[0] == "fallocate":
        Path(cmd[-1]).write_bytes(b"")
    if cmd[0] == "hostname":
        return CommandResult(returncode=0, stdout="192.168.1.50 fe80::1\n")
    return CommandResult(returncode=0)


def host(**overrides):
    data = {"arch": "aarch64", "total_ram_mb": 512, "free_disk_gb": 20.0, "effective_uid": 0, "hostname": "raspberrypi"}
    data.update(overrides)
    return HostProfile(**data)


@pytest.fixture
def providers(config, runner):
    runner.run.side_effect = host_commands

    secrets = SecretsProvider()
    secrets.path = Path(config.paths.credentials_file)
    secrets.config = config.credentials

    configurator = ServiceConfigProvider()
    configurator.base_dir = Path(config.paths.base_dir)
    configurator.compose_file = Path(config.compose_file)
    configurator.runner = runner
    configurator._secrets_provider = secrets

    package = AsyncMock()
    package.install.return_value = PackageInstallResult(installed=["mosquitto"], already_present=["jq"])
    hostname = AsyncMock()
    hostname.validate_spec.return_value = True
    container = AsyncMock()
    container.release_host_units.return_value = []

    return {
        "package": package,
        "docker": AsyncMock(),
        "pyenv": AsyncMock(),
        "hostname": hostname,
        "secrets": secrets,
        "config": configurator,
        "container": container,
    }


@pytest.fixture
def verifier():
    mock_verifier = MagicMock()
    mock_verifier.wait_ready = AsyncMock(return_value=VerificationReport(outcomes=[
        EndpointOutcome(service="mosquitto", target="mqtt://127.0.0.1:1883", ready=True, attempts=1),
    ]))
    return mock_verifier


@pytest.fixture
def make_engine(config, runner, providers, verifier):
    Path(config.swap.swaps_path).write_text(SWAPS_HEADER)

    def factory(services=None, dry_run=False, **config_updates):
        engine_config = config.model_copy(update={"dry_run": dry_run, **config_updates})
        return ProvisionEngine(
            config=engine_config,
            services=build_services(selection=["mosquitto"]) if services is None else services,
            packages=PackageSet(engine_config.packages.install),
            provider_registry=FakeRegistry(runner, providers),
            checker=PreconditionChecker(engine_config.host, engine_config.swap, runner, dry_run=dry_run),
            verifier=verifier,
        )

    return factory


def _mode(path):
    return stat.S_IMODE(Path(path).stat().st_mode)


@pytest.mark.asyncio
class TestProvisionEngine:
    """Test provisioning runs end to end with mocked system tools."""

    async def test_low_ram_host_converges(self, make_engine, providers, config):
        credentials_file = Path(config.paths.credentials_file)

        async def converge(specs):
            # Credentials are on disk before any container starts
            assert _mode(credentials_file) == 0o600
            assert [s.name for s in specs] == ["mosquitto"]

        providers["container"].converge.side_effect = converge

        report = await make_engine().run(host())

        assert report.state == RunState.DONE
        assert report.exit_code == 0
        assert Path(config.swap.path).exists()
        steps = {(s.phase, s.step): s for s in report.steps}
        assert steps[(RunState.CHECKING, "swap")].detail == "created"
        assert steps[(RunState.INSTALLING, "packages")].status == StepStatus.SUCCESS
        assert steps[(RunState.ORCHESTRATING, "container mosquitto")].status == StepStatus.SUCCESS
        providers["container"].converge.assert_awaited_once()
        spec = providers["container"].converge.call_args.args[0][0]
        assert [p.to_arg() for p in spec.ports] == ["1883:1883/tcp"]

        mqtt_user = providers["secrets"].issued("mqtt").username
        assert report.access["mosquitto"] == "homeassistant.local:1883"
        assert report.access["mosquitto (ip)"] == "192.168.1.50:1883"
        assert report.access["mqtt user"] == mqtt_user
        assert report.access["credentials file"] == str(credentials_file)
        assert providers["secrets"].issued("mqtt").password not in str(report.model_dump())

    async def test_host_broker_stopped_before_converge(self, make_engine, providers):
        container = providers["container"]
        calls = []

        async def release(spec):
            calls.append(("release", spec.name))
            return list(spec.host_units)

        async def converge(specs):
            calls.append(("converge", [s.name for s in specs]))

        container.release_host_units.side_effect = release
        container.converge.side_effect = converge

        report = await make_engine().run(host())

        assert calls == [("release", "mosquitto"), ("converge", ["mosquitto"])]
        steps = {(s.phase, s.step): s for s in report.steps}
        assert steps[(RunState.INSTALLING, "host unit mosquitto.service")].status == StepStatus.SUCCESS

    async def test_second_run_reaches_same_state(self, make_engine, providers, config):
        first = await make_engine().run(host())
        second = await make_engine().run(host())

        assert first.exit_code == second.exit_code == 0
        assert [s.step for s in first.steps if s.phase != RunState.CHECKING] == \
            [s.step for s in second.steps if s.phase != RunState.CHECKING]
        assert providers["container"].converge.await_count == 2
        assert [p.name for p in Path(config.paths.credentials_file).parent.iterdir()] == ["credentials"]

    async def test_low_disk_aborts_in_checking(self, make_engine, providers):
        report = await make_engine().run(host(free_disk_gb=5.0))

        assert report.state == RunState.FAILED
        assert report.exit_code == 1
        assert report.fatal.phase == RunState.CHECKING
        assert report.fatal.error == "InsufficientResources"
        providers["package"].install.assert_not_awaited()
        providers["container"].converge.assert_not_awaited()

    async def test_not_root_aborts(self, make_engine):
        report = await make_engine().run(host(effective_uid=1000))

        assert report.exit_code == 1
        assert "sudo hostprov run" in report.fatal.hint

    async def test_package_failure_exits_2(self, make_engine, providers, config):
        providers["package"].install.side_effect = PackageInstallError(["mosquitto"], "E: broken")

        report = await make_engine().run(host())

        assert report.exit_code == 2
        assert report.fatal.phase == RunState.INSTALLING
        assert "mosquitto" in report.fatal.message
        assert not Path(config.paths.credentials_file).exists()
        providers["container"].converge.assert_not_awaited()

    async def test_unexpected_os_error_is_phase_failure(self, make_engine, providers):
        providers["pyenv"].present.side_effect = PermissionError("read-only file system")

        report = await make_engine().run(host())

        assert report.exit_code == 2
        assert report.fatal.error == "PermissionError"

    async def test_orchestration_failure_exits_3(self, make_engine, providers):
        providers["container"].converge.side_effect = OrchestrationError("mosquitto", "port is already allocated")

        report = await make_engine().run(host())

        assert report.exit_code == 3
        assert report.fatal.phase == RunState.ORCHESTRATING
        assert "--services mosquitto" in report.fatal.hint

    async def test_engine_unavailable_exits_3(self, make_engine, providers):
        providers["container"].converge.side_effect = EngineUnavailable("docker.service", 120)

        report = await make_engine().run(host())

        assert report.exit_code == 3

    async def test_config_write_failure_exits_3(self, make_engine, config, tmp_path):
        blocker = tmp_path / "opt"
        blocker.write_text("")

        report = await make_engine().run(host())

        assert report.exit_code == 3
        assert report.fatal.phase == RunState.CONFIGURING
        assert report.fatal.error == "ConfigWriteError"

    async def test_verification_failure_is_a_warning(self, make_engine, verifier):
        verifier.wait_ready.return_value = VerificationReport(
            outcomes=[EndpointOutcome(service="mosquitto", target="mqtt://127.0.0.1:1883", ready=False, attempts=36)],
            errors=[VerificationTimeout("mosquitto", 180)],
        )

        report = await make_engine().run(host())

        assert report.state == RunState.DONE
        assert report.exit_code == 0
        assert report.warning_count == 1
        assert [e.service for e in report.failed_endpoints] == ["mosquitto"]

    async def test_dry_run_stops_after_checks(self, make_engine, providers, runner, config):
        report = await make_engine(dry_run=True).run(host())

        assert report.state == RunState.DONE
        assert report.dry_run
        assert report.exit_code == 0
        assert {s.phase for s in report.steps} == {RunState.CHECKING}
        assert [s.detail for s in report.steps if s.step == "swap"] == ["planned"]
        runner.run.assert_not_awaited()
        providers["package"].install.assert_not_awaited()
        assert not Path(config.swap.path).exists()

    async def test_python_env_disabled(self, make_engine, providers, config):
        disabled = config.python_env.model_copy(update={"enabled": False})

        report = await make_engine(python_env=disabled).run(host(total_ram_mb=4096))

        providers["pyenv"].present.assert_not_awaited()
        assert "python env" not in report.access

    async def test_no_services(self, make_engine, providers):
        report = await make_engine(services=[]).run(host(total_ram_mb=4096))

        assert report.exit_code == 0
        providers["docker"].present.assert_not_awaited()
        providers["container"].converge.assert_not_awaited()


@pytest.mark.asyncio
class TestProvision:
    """Test the provision entry point."""

    async def test_registry_shut_down_on_error(self, config):
        manager = MagicMock()
        manager.config = config
        manager.services = []
        manager.packages = PackageSet()

        with patch("hostprov.provision.engine.ProviderRegistry") as mock_registry_class, \
                patch.object(ProvisionEngine, "run", new=AsyncMock(side_effect=RuntimeError("boom"))):
            registry = mock_registry_class.return_value
            registry.initialize = AsyncMock()
            registry.shutdown = AsyncMock()

            with pytest.raises(RuntimeError):
                await provision(manager, host())

        registry.initialize.assert_awaited_once_with(config)
        registry.shutdown.assert_awaited_once()
