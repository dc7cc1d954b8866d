"""
Shared test fixtures: fake process runners and an isolated Actions host.
"""

import subprocess

import pytest


class FakeRunner:
    """Stands in for run_process; replies are consumed in call order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.encodings = []

    def __call__(self, cmd, encoding=None):
        self.calls.append(list(cmd))
        self.encodings.append(encoding)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        stdout, stderr = reply if isinstance(reply, tuple) else (reply, "")
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr=stderr)


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def actions_host(tmp_path, monkeypatch):
    """Point GITHUB_ENV / GITHUB_OUTPUT at empty files under tmp_path."""
    env_file = tmp_path / "github_env"
    output_file = tmp_path / "github_output"
    env_file.write_text("")
    output_file.write_text("")
    monkeypatch.setenv("GITHUB_ENV", str(env_file))
    monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
    return env_file, output_file


def read_file_commands(path):
    """Parse the NAME<<DELIM heredoc records written to a runner file."""
    lines = path.read_text(encoding="utf-8").split("\n")
    result = {}
    i = 0
    while i < len(lines):
        if "<<" not in lines[i]:
            i += 1
            continue
        name, delimiter = lines[i].split("<<", 1)
        end = lines.index(delimiter, i + 1)
        result[name] = "\n".join(lines[i + 1:end])
        i = end + 1
    return result


@pytest.fixture
def file_commands():
    return read_file_commands
