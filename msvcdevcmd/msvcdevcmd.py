#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright © 2024 midrare
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated
# documentation files (the “Software”), to deal in the
# Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute,
# sublicense, and/or sell copies of the Software, and to
# permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall
# be included in all copies or substantial portions of the
# Software.
#
# THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY
# KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE
# WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR
# PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS
# OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR
# OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR
# OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE
# SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

from __future__ import annotations

__author__: str = 'midrare'
__license__: str = 'MIT'
__version__: str = '0.1.0'

import argparse
import dataclasses
import enum
import ntpath
import os
import platform
import subprocess
import sys
import typing

import requests

from . import actions


EXITCODE_SUCCESS: int = 0
EXITCODE_SUBSCRIPTION_REJECTED: int = 1
EXITCODE_FAILED: int = 254

SUBSCRIPTION_API_URL: str = (
    "https://agent.api.stepsecurity.io/v1/github/{repository}/actions/subscription")
SUBSCRIPTION_TIMEOUT_SECS: int = 3

DEFAULT_VSWHERE: str = "vswhere.exe"
PATH_VARIABLE: str = "Path"
PATH_SEPARATOR: str = ";"
COMPONENT_SEPARATOR: str = ";"
VSDEVCMD_RELPATH: tuple[str, ...] = ("Common7", "Tools", "vsdevcmd.bat")

DEFAULT_COMPONENT: str = "Microsoft.VisualStudio.Component.VC.Tools.x86.x64"
ARCH_COMPONENTS: dict[str, str] = {
    "arm64": "Microsoft.VisualStudio.Component.VC.Tools.ARM64",
    "arm64ec": "Microsoft.VisualStudio.Component.VC.Tools.ARM64EC",
    "arm": "Microsoft.VisualStudio.Component.VC.Tools.ARM",
}

Runner = typing.Callable[..., "subprocess.CompletedProcess[str]"]


class Input(enum.StrEnum):
    HOST_ARCH = "host_arch"
    ARCH = "arch"
    TOOLSET_VERSION = "toolset_version"
    WINSDK = "winsdk"
    VSWHERE = "vswhere"
    COMPONENTS = "components"
    VERBOSE = "verbose"


class DevCmdError(Exception):
    pass


class MissingHostArchitectureError(DevCmdError):
    pass


class LocatorSpawnError(DevCmdError):
    pass


class NoCompatibleInstallationError(DevCmdError):
    pass


class ShellSpawnError(DevCmdError):
    pass


class EnvironmentDumpError(DevCmdError):
    pass


class SubscriptionRejectedError(DevCmdError):
    pass


@dataclasses.dataclass(frozen=True)
class Settings:
    host_arch: str
    arch: str
    toolset_version: None | str = None
    winsdk: None | str = None
    vswhere: str = DEFAULT_VSWHERE
    components: tuple[str, ...] = ()
    verbose: bool = False


def run_process(
    cmd: list[str],
    encoding: None | str = None,
) -> subprocess.CompletedProcess[str]:
    # stdin is closed so that cmd.exe never waits on the console
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        encoding=encoding,
        errors="replace",
        stdin=subprocess.DEVNULL,
    )


def parse_bool(value: typing.Any) -> bool:
    """Inputs are stringly-typed. Only the exact string "true" is true,
    so that "false" (a non-empty string) does not turn verbose mode on."""
    return str(value) == "true"


def split_components(value: None | str) -> list[str]:
    if not value:
        return []
    return [s for s in value.split(COMPONENT_SEPARATOR) if s]


def get_default_component(arch: str) -> str:
    return ARCH_COMPONENTS.get(arch, DEFAULT_COMPONENT)


def get_settings(
    inputs: typing.Mapping[str, None | str],
    environ: typing.Mapping[str, str],
) -> Settings:
    """Merge action inputs with host-derived defaults.

    Nothing is read from the process environment; `environ` is whatever
    snapshot the caller passes in.
    """
    # vsdevcmd accepts both amd64 and x64
    host_arch = inputs.get(Input.HOST_ARCH) or \
        environ.get("PROCESSOR_ARCHITECTURE", "").lower()
    if not host_arch:
        raise MissingHostArchitectureError(
            "Host architecture not specified and PROCESSOR_ARCHITECTURE "
            "is not set.")

    arch = inputs.get(Input.ARCH) or host_arch
    toolset_version = inputs.get(Input.TOOLSET_VERSION) or None

    components = split_components(inputs.get(Input.COMPONENTS))
    if not toolset_version:
        # newest toolset for the target arch has to be asked for explicitly
        components.append(get_default_component(arch))

    return Settings(
        host_arch=host_arch,
        arch=arch,
        toolset_version=toolset_version,
        winsdk=inputs.get(Input.WINSDK) or None,
        vswhere=inputs.get(Input.VSWHERE) or DEFAULT_VSWHERE,
        components=tuple(components),
        verbose=parse_bool(inputs.get(Input.VERBOSE)),
    )


def find_vswhere(
    settings: Settings,
    environ: typing.Mapping[str, str],
) -> str:
    installer_dir = ntpath.join(
        environ.get("ProgramFiles(x86)") or "C:\\Program Files (x86)",
        "Microsoft Visual Studio",
        "Installer",
    )
    # absolute paths replace the installer dir entirely
    vswhere = ntpath.normpath(ntpath.join(installer_dir, settings.vswhere))
    print(f"vswhere: {vswhere}")
    return vswhere


def get_vswhere_args(
    settings: Settings,
    install_path_only: bool = True,
) -> list[str]:
    args = ["-nologo", "-utf8", "-latest", "-products", "*"]
    if install_path_only:
        args += ["-property", "installationPath"]
    for component in settings.components:
        args += ["-requires", component]
    return args


def _print_vswhere_details(
    vswhere: str,
    settings: Settings,
    runner: Runner,
):
    try:
        details = runner(
            [vswhere] + get_vswhere_args(settings, install_path_only=False),
            encoding="utf-8",
        )
    except Exception as e:
        print(f"Failed to query installation details: {e}", file=sys.stderr)
        return

    print((details.stdout or "") + (details.stderr or ""))


def select_install_path(output: str) -> str:
    paths = [line.strip() for line in output.splitlines() if line.strip()]
    if not paths:
        raise NoCompatibleInstallationError(
            "Could not find compatible VS installation")

    # vswhere lists the preferred match last
    return paths[-1]


def find_vs_install_dir(
    settings: Settings,
    environ: typing.Mapping[str, str],
    runner: Runner = run_process,
) -> str:
    vswhere = find_vswhere(settings, environ)
    args = get_vswhere_args(settings)
    print(f"$ {vswhere} {' '.join(args)}")

    try:
        result = runner([vswhere] + args, encoding="utf-8")
    except OSError as e:
        raise LocatorSpawnError(f'Failed to run "{vswhere}": {e}') from e

    if settings.verbose:
        _print_vswhere_details(vswhere, settings, runner)

    install_path = select_install_path(result.stdout or "")
    print(f"install: {install_path}")
    return install_path


def get_vsdevcmd_args(settings: Settings) -> list[str]:
    # see $VISUALSTUDIO/Common7/Tools/vsdevcmd/core/parse_cmd.bat for
    # valid command-line arguments
    args = [f"-host_arch={settings.host_arch}", f"-arch={settings.arch}"]
    if settings.toolset_version:
        args.append(f"-vcvars_ver={settings.toolset_version}")
    if settings.winsdk:
        args.append(f"-winsdk={settings.winsdk}")
    return args


def dump_vsdevcmd_env(
    settings: Settings,
    install_path: str,
    runner: Runner = run_process,
) -> str:
    vsdevcmd = ntpath.join(install_path, *VSDEVCMD_RELPATH)
    print(f"vsdevcmd: {vsdevcmd}")

    cmd_args = ["/q", "/c", vsdevcmd] + get_vsdevcmd_args(settings) + \
        ["&&", "set"]
    print(f"$ cmd {' '.join(cmd_args)}")

    try:
        result = runner(["cmd"] + cmd_args)
    except OSError as e:
        raise ShellSpawnError(f"Failed to run cmd: {e}") from e

    output = (result.stdout or "") + "\n" + (result.stderr or "")

    if not any(key.upper() == "VSCMD_VER" and value
               for key, value in parse_env_dump(output)):
        # errors come in form of "[ERROR:script.bat] msg"
        errors = [line.strip() for line in output.splitlines()
                  if line.strip().startswith("[")]
        raise EnvironmentDumpError(
            "Environment dump failed to capture Visual Studio variables." +
            "".join(f"\n{line}" for line in errors))

    return output


def parse_env_dump(output: str) -> list[tuple[str, str]]:
    pairs = []
    for line in output.splitlines():
        line = line.strip()
        if "=" not in line:
            continue
        # values may contain "=" too
        key, value = line.split("=", maxsplit=1)
        pairs.append((key, value))
    return pairs


def diff_env(
    output: str,
    environ: typing.Mapping[str, str],
) -> dict[str, str]:
    """Work out which variables from a `set` dump must be exported.

    Variables the current environment lacks (or has empty) are new. The
    path variable is always exported, as every occurrence in the dump
    joined in order.
    """
    # Windows variable names are case-insensitive
    current = {k.upper(): v for k, v in environ.items()}

    new_env = {}
    path_name = None
    path_values = []
    for key, value in parse_env_dump(output):
        if key.upper() == PATH_VARIABLE.upper():
            path_name = path_name or key
            path_values.append(value)
        elif not current.get(key.upper()):
            new_env[key] = value

    new_env[path_name or PATH_VARIABLE] = PATH_SEPARATOR.join(path_values)
    return new_env


def export_env(env: typing.Mapping[str, str]):
    for key, value in env.items():
        actions.export_variable(key, value)


def validate_subscription(
    repository: str,
    timeout: int = SUBSCRIPTION_TIMEOUT_SECS,
):
    url = SUBSCRIPTION_API_URL.format(repository=repository)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        if e.response is not None and e.response.status_code == 403:
            raise SubscriptionRejectedError(
                "Subscription is not valid. "
                "Reach out to support@stepsecurity.io") from e
        print("Timeout or API not reachable. Continuing to next step.")


def _add_input_options(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--host-arch",
        metavar="ARCH",
        dest=Input.HOST_ARCH,
        help="host arch (default: input or PROCESSOR_ARCHITECTURE)",
    )
    parser.add_argument(
        "--arch",
        metavar="ARCH",
        dest=Input.ARCH,
        help="target arch (default: host arch)",
    )
    parser.add_argument(
        "--toolset-version",
        metavar="VER",
        dest=Input.TOOLSET_VERSION,
        help="VC++ toolset version passed as -vcvars_ver (default: newest)",
    )
    parser.add_argument(
        "--winsdk",
        metavar="VER",
        dest=Input.WINSDK,
        help="version of Windows SDK to use (default: autodetect)",
    )
    parser.add_argument(
        "--vswhere",
        metavar="PATH",
        dest=Input.VSWHERE,
        help=f"""path to vswhere, relative to the Visual Studio
        installer directory (default: {DEFAULT_VSWHERE})""",
    )
    parser.add_argument(
        "--components",
        metavar="LIST",
        dest=Input.COMPONENTS,
        help="semicolon-separated component IDs the installation must have",
    )
    # noinspection PyTypeChecker
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        dest=Input.VERBOSE,
        default=None,
        help="print details of the matching installations",
    )


def _parse_args(args: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="""Set up the Visual Studio developer command prompt
        environment for subsequent GitHub Actions steps. Options not
        given fall back to the corresponding action inputs""")
    _add_input_options(parser)
    return parser.parse_args(args)


def get_inputs(
    args: argparse.Namespace,
    environ: None | typing.Mapping[str, str] = None,
) -> dict[str, str]:
    inputs = {}
    for name in Input:
        value = getattr(args, name, None)
        if value is None:
            inputs[name] = actions.get_input(name, environ)
        elif isinstance(value, bool):
            inputs[name] = "true" if value else "false"
        else:
            inputs[name] = value
    return inputs


def main(argv: list[str]) -> int:
    args = _parse_args(argv)

    try:
        validate_subscription(os.environ.get("GITHUB_REPOSITORY", ""))
    except SubscriptionRejectedError as e:
        actions.error(str(e))
        return EXITCODE_SUBSCRIPTION_REJECTED

    # nothing to do on non-Windows platforms
    if platform.system() != "Windows":
        return EXITCODE_SUCCESS

    try:
        settings = get_settings(get_inputs(args), os.environ)

        install_path = find_vs_install_dir(settings, os.environ, run_process)
        actions.set_output("install_path", install_path)

        output = dump_vsdevcmd_env(settings, install_path, run_process)
        export_env(diff_env(output, os.environ))
        print("environment updated")
    except Exception as e:
        actions.set_failed(str(e))
        return EXITCODE_FAILED

    return EXITCODE_SUCCESS


def cli() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(cli())
