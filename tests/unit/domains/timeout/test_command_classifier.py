"""Tests for command classification for automatic timeout selection.

This module tests the mapping between shell command text and
CommandCategory values used to pick a timeout profile.
"""

import pytest

from pkglocal.domains.timeout import CommandCategory
from pkglocal.domains.timeout.command_classifier import (
    CATEGORY_SIGNATURES,
    COMMAND_PATTERNS,
    classify_command,
    get_all_signatures_for_category,
    is_package_operation,
    is_quick_command,
    matches_signature,
)


class TestClassifyCommand:
    """Tests for command classification."""

    @pytest.mark.parametrize("command", [
        "pip install requests",
        "pip3 install -r requirements.txt",
        "python -m pip install numpy",
        "python3 -m pip install --upgrade pip",
        "uv add httpx",
        "uv pip install flask",
        "poetry add pendulum",
        "pipenv install django",
        "npm install",
        "npm i lodash",
        "npm ci",
        "yarn add react",
        "pnpm install",
    ])
    def test_install_commands(self, command):
        """Test that install commands return PACKAGE_INSTALL."""
        assert classify_command(command) == CommandCategory.PACKAGE_INSTALL

    @pytest.mark.parametrize("command", [
        "pip uninstall -y requests",
        "uv remove httpx",
        "uv pip uninstall flask",
        "poetry remove pendulum",
        "npm rm lodash",
        "yarn remove react",
    ])
    def test_uninstall_commands(self, command):
        """Test that uninstall commands return PACKAGE_UNINSTALL."""
        assert classify_command(command) == CommandCategory.PACKAGE_UNINSTALL

    @pytest.mark.parametrize("command", [
        "pip list",
        "pip freeze",
        "pip show requests",
        "uv pip list",
        "npm ls",
    ])
    def test_list_commands(self, command):
        assert classify_command(command) == CommandCategory.PACKAGE_LIST

    @pytest.mark.parametrize("command", [
        "uv sync",
        "uv lock",
        "poetry lock",
        "pipenv sync",
        "pip-compile requirements.in",
    ])
    def test_sync_commands(self, command):
        assert classify_command(command) == CommandCategory.PACKAGE_SYNC

    @pytest.mark.parametrize("command", [
        "mvn clean install",
        "gradle build",
        "./gradlew test",
        "npm run build",
    ])
    def test_build_commands(self, command):
        assert classify_command(command) == CommandCategory.PACKAGE_BUILD

    def test_venv_creation(self):
        assert classify_command("uv venv .venv") == CommandCategory.ENV_CREATE

    @pytest.mark.parametrize("command", [
        "export PATH=/usr/local/bin:$PATH",
        "set -e",
        "source .venv/bin/activate",
        ". .venv/bin/activate",
    ])
    def test_env_set_commands(self, command):
        assert classify_command(command) == CommandCategory.ENV_SET

    @pytest.mark.parametrize("command", ["cd /tmp", "cd", "  cd ..  "])
    def test_navigation_commands(self, command):
        assert classify_command(command) == CommandCategory.NAVIGATION

    @pytest.mark.parametrize("command", [
        "python --version",
        "node -v",
        "pip --version",
        "uv help",
        "npm --help",
    ])
    def test_version_and_help_commands(self, command):
        assert classify_command(command) == CommandCategory.VERSION_CHECK

    @pytest.mark.parametrize("command", [
        "echo hello",
        "ls -la",
        "pwd",
        "cat setup.cfg",
        "which python",
        "command -v uv",
        "mkdir -p build",
        "rm -rf dist",
    ])
    def test_quick_commands(self, command):
        assert classify_command(command) == CommandCategory.QUICK_COMMAND

    @pytest.mark.parametrize("command", [
        "",
        "   ",
        None,
        "python script.py",
        "make all",
        "lsof -i :8080",
    ])
    def test_unknown_commands(self, command):
        assert classify_command(command) == CommandCategory.UNKNOWN

    def test_case_insensitive(self):
        assert classify_command("PIP INSTALL requests") == CommandCategory.PACKAGE_INSTALL
        assert classify_command("NPM Install") == CommandCategory.PACKAGE_INSTALL

    def test_install_takes_precedence_over_version_suffix(self):
        assert classify_command("pip install -v requests") == CommandCategory.PACKAGE_INSTALL


class TestSignatures:
    """Tests for the signature tables."""

    def test_every_signature_is_compiled(self):
        for _, names in CATEGORY_SIGNATURES:
            for name in names:
                assert name in COMMAND_PATTERNS

    def test_matches_signature(self):
        assert matches_signature("uv remove httpx", "UV_REMOVE")
        assert not matches_signature("uv add httpx", "UV_REMOVE")

    def test_get_all_signatures_for_category(self):
        assert get_all_signatures_for_category(CommandCategory.NAVIGATION) == ("CD",)
        assert "MAVEN" in get_all_signatures_for_category(CommandCategory.PACKAGE_BUILD)

    def test_unknown_category_has_no_signatures(self):
        assert get_all_signatures_for_category(CommandCategory.UNKNOWN) == ()


class TestHelperPredicates:
    """Tests for convenience predicates."""

    @pytest.mark.parametrize("command,expected", [
        ("pip install requests", True),
        ("uv sync", True),
        ("mvn package", True),
        ("cd /tmp", False),
        ("python script.py", False),
    ])
    def test_is_package_operation(self, command, expected):
        assert is_package_operation(command) is expected

    @pytest.mark.parametrize("command,expected", [
        ("echo hi", True),
        ("export FOO=1", True),
        ("node --version", True),
        ("npm install", False),
        ("make", False),
    ])
    def test_is_quick_command(self, command, expected):
        assert is_quick_command(command) is expected
