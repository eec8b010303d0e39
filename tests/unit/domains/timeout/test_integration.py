"""Tests for the Shell-RPC integration wrappers.

This module tests the adapters the shell session uses:
- ShellRPCCompatTimeout (fixed-timeout compatible surface)
- TimeoutIntegration (polling surface)
- EnhancedTimeoutIntegration (named lifecycle notifications)
"""

import logging
from collections import defaultdict

import pytest

from pkglocal.domains.timeout import (
    CommandCategory,
    EnhancedTimeoutIntegration,
    ShellRPCCompatTimeout,
    TerminationReason,
    TimeoutConfigurationError,
    TimeoutStage,
    create_timeout_integration,
)
from pkglocal.domains.timeout.integration import (
    config_for_requested_timeout,
    normalize_timeout_budget,
)
from pkglocal.models.config_models import ShellRPCConfig


@pytest.fixture
def reasons():
    return []


@pytest.fixture
def compat(deps):
    return ShellRPCCompatTimeout(deps)


class TestConfigForRequestedTimeout:
    """Tests for deriving a config from a command and requested timeout."""

    def test_base_replaced_by_request(self):
        config = config_for_requested_timeout("pip install requests", 20000)
        assert config.base_timeout == 20000
        assert config.grace_timeout == 15000
        assert config.absolute_maximum == 600000

    def test_absolute_at_least_three_times_request(self):
        config = config_for_requested_timeout("echo hi", 4000)
        assert config.absolute_maximum == 12000

    def test_falls_back_when_profiles_unusable(self, tmp_path, monkeypatch):
        path = tmp_path / "profiles.yaml"
        path.write_text("cargo:\n  base_timeout: 1000\n")
        monkeypatch.setenv("PKG_LOCAL_TIMEOUT_PROFILES", str(path))

        config = config_for_requested_timeout("pip install requests", 3000)

        assert config.base_timeout == 3000
        assert config.activity_extension == 1000
        assert config.grace_timeout == 1500
        assert config.absolute_maximum == 9000
        assert config.progress_patterns == ()
        assert config.debug is False

    def test_fallback_honours_shell_rpc_debug(self, tmp_path, monkeypatch):
        path = tmp_path / "profiles.yaml"
        path.write_text("cargo:\n  base_timeout: 1000\n")
        monkeypatch.setenv("PKG_LOCAL_TIMEOUT_PROFILES", str(path))
        monkeypatch.setenv("DEBUG_SHELL_RPC", "true")

        config = config_for_requested_timeout("pip install requests", 3000)

        assert config.progress_patterns == ()
        assert config.debug is True

    def test_whole_number_float_accepted(self):
        config = config_for_requested_timeout("pip install numpy", 30000.0)
        assert config.base_timeout == 30000
        assert isinstance(config.base_timeout, int)
        assert config.absolute_maximum == 600000

    @pytest.mark.parametrize("budget", [0, -1000, 1500.5, 0.0, True, "30000", None])
    def test_unusable_budget_rejected(self, budget):
        with pytest.raises(TimeoutConfigurationError, match="requested timeout"):
            config_for_requested_timeout("pip install numpy", budget)


class TestNormalizeTimeoutBudget:
    """Tests for coercing requested budgets to whole milliseconds."""

    @pytest.mark.parametrize("budget,expected", [
        (30000, 30000),
        (30000.0, 30000),
        (1, 1),
    ])
    def test_accepted(self, budget, expected):
        assert normalize_timeout_budget(budget) == expected

    def test_fractional_rejected(self):
        with pytest.raises(TimeoutConfigurationError, match="whole milliseconds"):
            normalize_timeout_budget(2.5)


class TestShellRPCCompatTimeout:
    """Tests for the fixed-timeout compatible wrapper."""

    def test_inactive_before_start(self, compat):
        assert not compat.is_active()
        assert compat.get_state() is None
        assert compat.get_stats() is None
        assert compat.get_termination_reason() is None

    def test_start_reports_state(self, compat, clock, reasons):
        compat.start("pip install requests", 20000, reasons.append)
        clock.advance(300)

        state = compat.get_state()
        assert compat.is_active()
        assert state["stage"] == "ACTIVE"
        assert state["elapsed"] == 300
        assert state["time_since_activity"] == 300

    def test_silent_command_times_out(self, compat, clock, reasons):
        compat.start("pip install requests", 20000, reasons.append)

        clock.advance(20000)
        assert compat.get_state()["stage"] == "GRACE"
        assert reasons == []

        clock.advance(15000)
        assert reasons == [TerminationReason.GRACE_PERIOD_EXPIRED]
        assert not compat.is_active()
        assert compat.get_termination_reason() == TerminationReason.GRACE_PERIOD_EXPIRED

    def test_progress_keeps_command_alive(self, compat, clock, reasons):
        compat.start("pip install requests", 20000, reasons.append)

        for _ in range(5):
            clock.advance(19000)
            compat.process_output("Downloading requests-2.31.0.tar.gz")

        assert reasons == []
        assert compat.get_state()["stage"] == "ACTIVE"

    def test_error_output_terminates(self, compat, reasons):
        compat.start("pip install nothing-here", 20000, reasons.append)
        compat.process_output("ERROR: No matching distribution found for nothing-here")
        assert reasons == [TerminationReason.ERROR_DETECTED]

    def test_stop_cancels_timers(self, compat, clock, reasons):
        compat.start("npm install", 10000, reasons.append)
        compat.stop()

        clock.advance(100000)

        assert reasons == []
        assert clock.pending == 0
        assert compat.get_state() is None

    def test_restart_replaces_previous_timeout(self, compat, clock, reasons):
        compat.start("npm install", 10000, reasons.append)
        compat.start("echo hi", 2000, reasons.append)

        assert clock.pending == 2
        clock.advance(2000 + 500)
        assert reasons == [TerminationReason.GRACE_PERIOD_EXPIRED]

    def test_float_budget_arms_timeout(self, compat, clock, reasons):
        compat.start("pip install numpy", 30000.0, reasons.append)

        assert compat.is_active()
        clock.advance(30000)
        assert compat.get_state()["stage"] == "GRACE"

    def test_output_without_start_ignored(self, compat):
        compat.process_output("anything")
        compat.stop()
        assert compat.get_state() is None


class TestTimeoutIntegration:
    """Tests for the polling integration."""

    @pytest.fixture
    def integration(self, deps):
        return create_timeout_integration(deps)

    def test_not_timed_out_initially(self, integration):
        assert not integration.is_timed_out()
        assert integration.get_timeout_reason() is None
        assert integration.get_stats() is None

    def test_timeout_flag_set(self, integration, clock):
        integration.start("npm install", 10000)
        clock.advance(10000 + 15000)

        assert integration.is_timed_out()
        assert integration.get_timeout_reason() == TerminationReason.GRACE_PERIOD_EXPIRED
        assert integration.get_stats().terminations["grace_period_expired"] == 1

    def test_error_sets_flag(self, integration):
        integration.start("npm install", 10000)
        integration.process_output("npm ERR! code E404")
        assert integration.get_timeout_reason() == TerminationReason.ERROR_DETECTED

    def test_stop_resets_flag(self, integration, clock):
        integration.start("npm install", 10000)
        clock.advance(30000)
        integration.stop()

        assert not integration.is_timed_out()
        assert integration.get_timeout_reason() is None
        assert integration.get_state() is None

    def test_start_resets_flag(self, integration, clock):
        integration.start("echo hi", 1000)
        clock.advance(10000)
        assert integration.is_timed_out()

        integration.start("echo hi", 1000)
        assert not integration.is_timed_out()
        assert integration.get_state().stage == TimeoutStage.ACTIVE


class TestEnhancedTimeoutIntegration:
    """Tests for the notifying integration."""

    @pytest.fixture
    def integration(self, deps):
        return EnhancedTimeoutIntegration(deps, settings=ShellRPCConfig())

    @pytest.fixture
    def notifications(self, integration):
        received = defaultdict(list)
        for name in (
            "timeout:started",
            "timeout:activity",
            "timeout:state_changed",
            "timeout:grace_entered",
            "timeout:grace_recovered",
            "timeout:expired",
            "timeout:stopped",
        ):
            integration.on(name, lambda *args, _name=name: received[_name].append(args))
        return received

    def test_small_request_uses_tight_windows(self, integration):
        integration.start("ls -la", requested_timeout=500)
        config = integration.config
        assert (config.base_timeout, config.activity_extension) == (500, 50)
        assert (config.grace_timeout, config.absolute_maximum) == (100, 1500)
        assert integration.category == CommandCategory.QUICK_COMMAND

    def test_large_request_scales_windows(self, integration):
        integration.start("pip install torch", requested_timeout=20000)
        config = integration.config
        assert config.activity_extension == 1000
        assert config.grace_timeout == 3000
        assert config.absolute_maximum == 60000
        assert config.progress_patterns == ()

    def test_extension_scales_below_cap(self, integration):
        integration.start("pip install torch", requested_timeout=5000)
        assert integration.config.activity_extension == 500
        assert integration.config.grace_timeout == 750

    def test_without_request_auto_detects(self, integration):
        integration.start("uv sync")
        assert integration.config.base_timeout == 45000
        assert integration.category == CommandCategory.PACKAGE_SYNC

    @pytest.mark.parametrize("requested", [None, 0, -5])
    def test_non_positive_request_auto_detects(self, integration, requested):
        integration.start("pwd", requested_timeout=requested)
        assert integration.config.base_timeout == 1000

    def test_float_request_normalized(self, integration):
        integration.start("pip install numpy", requested_timeout=20000.0)
        assert integration.config.base_timeout == 20000
        assert integration.config.absolute_maximum == 60000

    def test_no_activity_after_termination(self, integration, notifications):
        integration.start("pip install numpy")
        integration.process_output("ERROR: boom")
        assert not integration.is_active()

        integration.process_output("late output")

        assert notifications["timeout:activity"] == [("ERROR: boom",)]
        assert notifications["timeout:expired"] == [(TerminationReason.ERROR_DETECTED,)]

    def test_started_notification(self, integration, notifications):
        integration.start("uv add httpx")
        command, category, config = notifications["timeout:started"][0]
        assert command == "uv add httpx"
        assert category == CommandCategory.PACKAGE_INSTALL
        assert config is integration.config

    def test_grace_entered_and_recovered(self, integration, notifications, clock):
        integration.start("make", requested_timeout=1000)

        clock.advance(1000)
        assert notifications["timeout:grace_entered"] == [()]
        assert notifications["timeout:state_changed"] == [("ACTIVE", "GRACE")]

        integration.process_output("compiling...")
        assert notifications["timeout:grace_recovered"] == [(1,)]
        assert notifications["timeout:activity"] == [("compiling...",)]
        assert integration.grace_recovery_attempts == 1
        assert integration.get_state().stage == TimeoutStage.ACTIVE

    def test_expired_notification(self, integration, notifications, clock):
        integration.start("make", requested_timeout=1000)
        clock.advance(1000 + 150)

        assert notifications["timeout:expired"] == [(TerminationReason.GRACE_PERIOD_EXPIRED,)]
        assert not integration.is_active()

    def test_stop_reports_stats(self, integration, notifications, clock):
        integration.start("make", requested_timeout=1000)
        clock.advance(1000)
        integration.process_output("still here")

        stats = integration.stop()

        assert stats.completions == 1
        assert stats.grace_recoveries == 1
        assert notifications["timeout:stopped"] == [(stats,)]
        assert integration.grace_recovery_attempts == 0
        assert integration.get_state() is None
        assert clock.pending == 0

    def test_stop_without_start(self, integration, notifications):
        assert integration.stop() is None
        assert notifications["timeout:stopped"] == []

    def test_handler_exception_logged(self, integration, caplog):
        def broken(*args):
            raise RuntimeError("handler bug")

        integration.on("timeout:started", broken)
        with caplog.at_level(logging.ERROR, logger="pkglocal.domains.timeout"):
            integration.start("echo hi")

        assert integration.is_active()
        assert "handler bug" in caplog.text

    def test_off_removes_handler(self, integration):
        seen = []
        integration.on("timeout:started", seen.append)
        integration.off("timeout:started", seen.append)
        integration.start("echo hi")
        assert seen == []

    def test_debug_settings_enable_config_debug(self, deps):
        integration = EnhancedTimeoutIntegration(
            deps, settings=ShellRPCConfig(DEBUG_TIMEOUT=True)
        )
        integration.start("echo hi", requested_timeout=2000)
        assert integration.config.debug is True
