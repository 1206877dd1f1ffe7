"""Tests for command execution."""

import subprocess

import pytest
from unittest.mock import AsyncMock, patch

from hostprov.models.config import CommandConfig
from hostprov.utils.command import CommandResult, CommandRunner, run_command


@pytest.mark.asyncio
class TestRunCommand:
    """Test run_command against real processes."""

    async def test_captures_output(self):
        result = await run_command(["sh", "-c", "echo out; echo err >&2"])

        assert result.returncode == 0
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"

    async def test_check_raises_with_output(self):
        with pytest.raises(subprocess.CalledProcessError) as exc_info:
            await run_command(["sh", "-c", "echo broken >&2; exit 3"])

        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "broken\n"

    async def test_no_check_returns_failure(self):
        result = await run_command(["sh", "-c", "exit 2"], check=False)

        assert result.returncode == 2

    async def test_timeout_kills_process(self):
        with pytest.raises(subprocess.TimeoutExpired):
            await run_command(["sleep", "5"], timeout=0.2)

    async def test_explicit_environment(self):
        result = await run_command(
            ["sh", "-c", "echo $HOSTPROV_TEST"],
            env={"PATH": "/usr/bin:/bin", "HOSTPROV_TEST": "yes"},
        )

        assert result.stdout.strip() == "yes"


@pytest.mark.asyncio
class TestCommandRunner:
    """Test CommandRunner."""

    async def test_merges_environment_and_defaults(self):
        runner = CommandRunner(env={"PATH": "/bin", "LANG": "C.UTF-8"}, cwd="/tmp", timeout=42)

        with patch("hostprov.utils.command.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0)
            await runner.run(["true"], env={"LANG": "C"})

        kwargs = mock_run.call_args.kwargs
        assert kwargs["env"] == {"PATH": "/bin", "LANG": "C"}
        assert kwargs["cwd"] == "/tmp"
        assert kwargs["timeout"] == 42

    async def test_retries_non_zero_exit(self):
        runner = CommandRunner(env={})
        failure = subprocess.CalledProcessError(1, ["apt-get", "update"])

        with patch("hostprov.utils.command.run_command", new_callable=AsyncMock) as mock_run, \
                patch("hostprov.utils.command.asyncio.sleep", new_callable=AsyncMock):
            mock_run.side_effect = [failure, CommandResult(returncode=0, stdout="ok")]
            result = await runner.run(["apt-get", "update"], retries=2)

        assert result.stdout == "ok"
        assert mock_run.call_count == 2

    async def test_gives_up_after_retries(self):
        runner = CommandRunner(env={})
        failure = subprocess.CalledProcessError(1, ["false"])

        with patch("hostprov.utils.command.run_command", new_callable=AsyncMock) as mock_run, \
                patch("hostprov.utils.command.asyncio.sleep", new_callable=AsyncMock):
            mock_run.side_effect = failure
            with pytest.raises(subprocess.CalledProcessError):
                await runner.run(["false"], retries=1)

        assert mock_run.call_count == 2

    async def test_timeouts_are_not_retried(self):
        runner = CommandRunner(env={})

        with patch("hostprov.utils.command.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(["sleep"], 1)
            with pytest.raises(subprocess.TimeoutExpired):
                await runner.run(["sleep", "10"], retries=3)

        assert mock_run.call_count == 1

    def test_from_config(self):
        runner = CommandRunner.from_config(CommandConfig(cwd="/srv", timeout=10))

        assert runner.cwd == "/srv"
        assert runner.timeout == 10
        assert runner.env["LANG"] == "C.UTF-8"
