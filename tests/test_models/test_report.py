"""Tests for run state and installation report."""

import pytest

from hostprov.models.report import (
    EndpointOutcome,
    FatalError,
    InstallationReport,
    RunState,
    StepStatus,
)


class TestInstallationReport:
    """Test InstallationReport."""

    def test_full_sequence(self):
        report = InstallationReport()
        for state in (
            RunState.CHECKING,
            RunState.INSTALLING,
            RunState.CONFIGURING,
            RunState.ORCHESTRATING,
            RunState.VERIFYING,
            RunState.DONE,
        ):
            report.transition(state)

        assert report.state == RunState.DONE
        assert report.exit_code == 0

    def test_dry_run_may_finish_after_checking(self):
        report = InstallationReport(dry_run=True)
        report.transition(RunState.CHECKING)
        report.transition(RunState.DONE)

        assert report.state == RunState.DONE

    @pytest.mark.parametrize("start,target", [
        (RunState.INIT, RunState.INSTALLING),
        (RunState.CHECKING, RunState.CONFIGURING),
        (RunState.VERIFYING, RunState.FAILED),
        (RunState.DONE, RunState.CHECKING),
        (RunState.FAILED, RunState.CHECKING),
    ])
    def test_illegal_transitions(self, start, target):
        report = InstallationReport(state=start)

        with pytest.raises(ValueError):
            report.transition(target)

    def test_record_uses_current_phase(self):
        report = InstallationReport()
        report.transition(RunState.CHECKING)
        outcome = report.record("preconditions", StepStatus.SUCCESS)

        assert outcome.phase == RunState.CHECKING
        assert report.steps == [outcome]

    def test_exit_code_from_fatal(self):
        report = InstallationReport()
        report.fatal = FatalError(
            phase=RunState.INSTALLING,
            error="PackageInstallError",
            message="Failed to install package(s): jq",
            hint="re-run",
            exit_code=2,
        )

        assert report.exit_code == 2

    def test_warning_count_includes_failed_endpoints(self):
        report = InstallationReport()
        report.transition(RunState.CHECKING)
        report.record("UnsupportedArchitecture", StepStatus.WARNING, "x86_64")
        report.endpoints = [
            EndpointOutcome(service="mosquitto", target="mqtt://127.0.0.1:1883", ready=True),
            EndpointOutcome(service="nodered", target="http://127.0.0.1:1880/", ready=False),
        ]

        assert [e.service for e in report.failed_endpoints] == ["nodered"]
        assert report.warning_count == 2
        assert report.exit_code == 0

    def test_failed_endpoint_counted_once(self):
        report = InstallationReport()
        report.transition(RunState.CHECKING)
        report.transition(RunState.INSTALLING)
        report.transition(RunState.CONFIGURING)
        report.transition(RunState.ORCHESTRATING)
        report.transition(RunState.VERIFYING)
        report.endpoints = [
            EndpointOutcome(service="mosquitto", target="mqtt://127.0.0.1:1883", ready=False),
        ]
        report.record("verify", StepStatus.WARNING, "1 of 1 service(s) not ready")

        assert report.warning_count == 1
