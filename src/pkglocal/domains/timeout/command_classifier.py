"""Command classification for automatic timeout selection.

This module maps shell command text to CommandCategory values, and each
category to a timeout profile, so the Shell-RPC layer can pick sensible
thresholds without the caller knowing which tool it is running:

- package installs and syncs: long windows, progress-aware patterns
- uninstalls: medium windows
- listings and version checks: short windows
- environment and navigation builtins: very short windows
"""

import re
from typing import Dict, List, Optional, Tuple

from .entities import CommandCategory


# Command signatures. Matched case-insensitively against the stripped command.
COMMAND_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    name: re.compile(source, re.IGNORECASE)
    for name, source in {
        # Python - pip
        "PIP_INSTALL": r"^\s*(pip|pip3|python3?\s+-m\s+pip)\s+(install|add)",
        "PIP_UNINSTALL": r"^\s*(pip|pip3|python3?\s+-m\s+pip)\s+(uninstall|remove)",
        "PIP_LIST": r"^\s*(pip|pip3|python3?\s+-m\s+pip)\s+(list|freeze|show)",
        "PIP_UPGRADE": r"^\s*(pip|pip3|python3?\s+-m\s+pip)\s+install\s+--upgrade",
        "PIP_COMPILE": r"^\s*pip-compile",
        # Python - uv
        "UV_ADD": r"^\s*uv\s+(add|pip\s+install)",
        "UV_REMOVE": r"^\s*uv\s+(remove|pip\s+uninstall)",
        "UV_SYNC": r"^\s*uv\s+(sync|lock)",
        "UV_LIST": r"^\s*uv\s+(pip\s+)?list",
        "UV_VENV": r"^\s*uv\s+venv",
        # Python - poetry
        "POETRY_ADD": r"^\s*poetry\s+(add|install)",
        "POETRY_REMOVE": r"^\s*poetry\s+remove",
        "POETRY_LOCK": r"^\s*poetry\s+lock",
        # Python - pipenv
        "PIPENV_INSTALL": r"^\s*pipenv\s+install",
        "PIPENV_UNINSTALL": r"^\s*pipenv\s+uninstall",
        "PIPENV_SYNC": r"^\s*pipenv\s+sync",
        # Node.js
        "NPM_INSTALL": r"^\s*npm\s+(install|i|add|ci)\b",
        "NPM_UNINSTALL": r"^\s*npm\s+(uninstall|remove|rm)\b",
        "NPM_LIST": r"^\s*npm\s+(list|ls)\b",
        "NPM_RUN": r"^\s*npm\s+run",
        "YARN_ADD": r"^\s*yarn\s+(add|install)",
        "YARN_REMOVE": r"^\s*yarn\s+remove",
        "PNPM_ADD": r"^\s*pnpm\s+(add|install)",
        "PNPM_REMOVE": r"^\s*pnpm\s+remove",
        # Java
        "MAVEN": r"^\s*(mvn|maven)\s+",
        "GRADLE": r"^\s*(gradle|gradlew|\./gradlew)\s+",
        # Environment
        "EXPORT": r"^\s*export\s+",
        "SET_VAR": r"^\s*set\s+",
        "SOURCE": r"^\s*(source|\.)\s+",
        "CD": r"^\s*cd(\s+|$)",
        # Version checks
        "VERSION": r"\s+(--version|-v|-V|version)\s*$",
        "HELP": r"\s+(--help|-h|help)\s*$",
        # Quick commands
        "ECHO": r"^\s*echo(\s+|$)",
        "LS": r"^\s*ls(\s+|$)",
        "PWD": r"^\s*pwd\s*$",
        "CAT": r"^\s*cat\s+",
        "WHICH": r"^\s*(which|where|type|command\s+-v)\s+",
        "MKDIR": r"^\s*mkdir\s+",
        "RM": r"^\s*rm\s+",
        "CP": r"^\s*cp\s+",
        "MV": r"^\s*mv\s+",
    }.items()
}

# Classification precedence: first category with a matching signature wins
CATEGORY_SIGNATURES: List[Tuple[CommandCategory, Tuple[str, ...]]] = [
    (CommandCategory.PACKAGE_INSTALL, (
        "PIP_INSTALL", "PIP_UPGRADE", "UV_ADD", "POETRY_ADD",
        "PIPENV_INSTALL", "NPM_INSTALL", "YARN_ADD", "PNPM_ADD",
    )),
    (CommandCategory.PACKAGE_UNINSTALL, (
        "PIP_UNINSTALL", "UV_REMOVE", "POETRY_REMOVE", "PIPENV_UNINSTALL",
        "NPM_UNINSTALL", "YARN_REMOVE", "PNPM_REMOVE",
    )),
    (CommandCategory.PACKAGE_LIST, ("PIP_LIST", "UV_LIST", "NPM_LIST")),
    (CommandCategory.PACKAGE_SYNC, ("UV_SYNC", "POETRY_LOCK", "PIPENV_SYNC", "PIP_COMPILE")),
    (CommandCategory.PACKAGE_BUILD, ("MAVEN", "GRADLE", "NPM_RUN")),
    (CommandCategory.ENV_CREATE, ("UV_VENV",)),
    (CommandCategory.ENV_SET, ("EXPORT", "SET_VAR", "SOURCE")),
    (CommandCategory.NAVIGATION, ("CD",)),
    (CommandCategory.VERSION_CHECK, ("VERSION", "HELP")),
    (CommandCategory.QUICK_COMMAND, (
        "ECHO", "LS", "PWD", "CAT", "WHICH", "MKDIR", "RM", "CP", "MV",
    )),
]


def matches_signature(command: str, name: str) -> bool:
    """Check a command against one named signature."""
    return bool(COMMAND_PATTERNS[name].search(command))


def classify_command(command: Optional[str]) -> CommandCategory:
    """Classify a shell command to determine appropriate timeout.

    Args:
        command: Command text as it will be sent to the shell.

    Returns:
        CommandCategory for profile lookup; UNKNOWN for empty or
        unrecognized commands.

    Examples:
        >>> classify_command("pip install requests")
        <CommandCategory.PACKAGE_INSTALL: 'package_install'>
        >>> classify_command("python --version")
        <CommandCategory.VERSION_CHECK: 'version_check'>
    """
    if not command:
        return CommandCategory.UNKNOWN

    cmd = command.strip()
    for category, signatures in CATEGORY_SIGNATURES:
        if any(matches_signature(cmd, name) for name in signatures):
            return category

    return CommandCategory.UNKNOWN


def get_all_signatures_for_category(category: CommandCategory) -> Tuple[str, ...]:
    """Get the names of all signatures that map to a category."""
    for candidate, signatures in CATEGORY_SIGNATURES:
        if candidate == category:
            return signatures
    return ()


def is_package_operation(command: str) -> bool:
    """Check if a command installs, removes, lists, syncs or builds packages."""
    return classify_command(command) in {
        CommandCategory.PACKAGE_INSTALL,
        CommandCategory.PACKAGE_UNINSTALL,
        CommandCategory.PACKAGE_LIST,
        CommandCategory.PACKAGE_SYNC,
        CommandCategory.PACKAGE_BUILD,
    }


def is_quick_command(command: str) -> bool:
    """Check if a command is expected to finish almost instantly."""
    return classify_command(command) in {
        CommandCategory.ENV_SET,
        CommandCategory.NAVIGATION,
        CommandCategory.QUICK_COMMAND,
        CommandCategory.VERSION_CHECK,
    }
