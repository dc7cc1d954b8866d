import os
import typing

from .msvcdevcmd import DevCmdError
from .msvcdevcmd import EnvironmentDumpError
from .msvcdevcmd import LocatorSpawnError
from .msvcdevcmd import MissingHostArchitectureError
from .msvcdevcmd import NoCompatibleInstallationError
from .msvcdevcmd import Runner
from .msvcdevcmd import Settings
from .msvcdevcmd import ShellSpawnError
from .msvcdevcmd import SubscriptionRejectedError
from .msvcdevcmd import diff_env
from .msvcdevcmd import dump_vsdevcmd_env
from .msvcdevcmd import find_vs_install_dir
from .msvcdevcmd import get_settings
from .msvcdevcmd import main
from .msvcdevcmd import run_process


def dump(
    inputs: None | typing.Mapping[str, str] = None,
    environ: None | typing.Mapping[str, str] = None,
    runner: Runner = run_process,
) -> dict[str, str]:
    """Return the variables the developer prompt would add, without
    exporting anything."""
    if environ is None:
        environ = os.environ

    settings = get_settings(inputs or {}, environ)
    install_path = find_vs_install_dir(settings, environ, runner)
    return diff_env(dump_vsdevcmd_env(settings, install_path, runner), environ)


__all__ = [
    "DevCmdError",
    "EnvironmentDumpError",
    "LocatorSpawnError",
    "MissingHostArchitectureError",
    "NoCompatibleInstallationError",
    "Settings",
    "ShellSpawnError",
    "SubscriptionRejectedError",
    "dump",
    "main",
]
