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

"""Minimal GitHub Actions runner interface: inputs, outputs, exported
variables and workflow-command log lines."""

from __future__ import annotations

import os
import typing
import uuid

ENV_FILE_VAR: str = "GITHUB_ENV"
OUTPUT_FILE_VAR: str = "GITHUB_OUTPUT"


def _escape_data(s: str) -> str:
    return s.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(s: str) -> str:
    return _escape_data(s).replace(":", "%3A").replace(",", "%2C")


def _issue_command(command: str, message: str, **properties: str):
    props = ",".join(f"{k}={_escape_property(v)}"
                     for k, v in properties.items())
    print(f"::{command}{' ' + props if props else ''}::{_escape_data(message)}")


def _format_file_command(name: str, value: str) -> str:
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in name:
        raise ValueError(
            f'Name should not contain the delimiter "{delimiter}".')
    if delimiter in value:
        raise ValueError(
            f'Value should not contain the delimiter "{delimiter}".')
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


def _append_file_command(path: str, name: str, value: str):
    if not os.path.isfile(path):
        raise FileNotFoundError(f'"{path}" is not a file.')

    with open(path, "a", encoding="utf-8") as f:
        f.write(_format_file_command(name, value))


def get_input(
    name: str,
    environ: None | typing.Mapping[str, str] = None,
) -> str:
    if environ is None:
        environ = os.environ
    key = f"INPUT_{name.replace(' ', '_').upper()}"
    return environ.get(key, "").strip()


def set_output(name: str, value: str):
    if path := os.environ.get(OUTPUT_FILE_VAR):
        _append_file_command(path, name, value)
    else:
        _issue_command("set-output", value, name=name)


def export_variable(name: str, value: str):
    os.environ[name] = value

    if path := os.environ.get(ENV_FILE_VAR):
        _append_file_command(path, name, value)
    else:
        _issue_command("set-env", value, name=name)


def error(message: str):
    _issue_command("error", message)


def set_failed(message: str):
    error(message)
