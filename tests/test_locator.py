"""
Tests for the vswhere side: path resolution, arguments, install selection.
"""

import pytest

from msvcdevcmd.msvcdevcmd import (
    LocatorSpawnError,
    NoCompatibleInstallationError,
    Settings,
    find_vs_install_dir,
    find_vswhere,
    get_vswhere_args,
    select_install_path,
)

ENVIRON = {"ProgramFiles(x86)": "C:\\Program Files (x86)"}
INSTALLER = "C:\\Program Files (x86)\\Microsoft Visual Studio\\Installer"


def make_settings(**kwargs):
    kwargs.setdefault("host_arch", "amd64")
    kwargs.setdefault("arch", "amd64")
    kwargs.setdefault("components", ("A", "B"))
    return Settings(**kwargs)


class TestFindVswhere:
    def test_relative_to_installer_dir(self):
        assert find_vswhere(make_settings(), ENVIRON) == \
            INSTALLER + "\\vswhere.exe"

    def test_absolute_path_kept(self):
        settings = make_settings(vswhere="D:\\tools\\vswhere.exe")
        assert find_vswhere(settings, ENVIRON) == "D:\\tools\\vswhere.exe"

    def test_program_files_fallback(self):
        assert find_vswhere(make_settings(), {}) == INSTALLER + "\\vswhere.exe"


class TestVswhereArgs:
    def test_install_path_query(self):
        assert get_vswhere_args(make_settings()) == [
            "-nologo", "-utf8", "-latest", "-products", "*",
            "-property", "installationPath",
            "-requires", "A", "-requires", "B",
        ]

    def test_details_query(self):
        args = get_vswhere_args(make_settings(), install_path_only=False)
        assert "-property" not in args
        assert args[-4:] == ["-requires", "A", "-requires", "B"]

    def test_no_components(self):
        args = get_vswhere_args(make_settings(components=()))
        assert "-requires" not in args


class TestSelectInstallPath:
    def test_last_non_blank_line(self):
        output = "\nC:\\VS\\2019\n  \nC:\\VS\\2022\n"
        assert select_install_path(output) == "C:\\VS\\2022"

    def test_lines_are_trimmed(self):
        assert select_install_path("  C:\\VS\\2022 \r\n") == "C:\\VS\\2022"

    @pytest.mark.parametrize("output", ["", "\n", "   \n\t\n"])
    def test_nothing_found(self, output):
        with pytest.raises(NoCompatibleInstallationError):
            select_install_path(output)


class TestFindVsInstallDir:
    def test_runs_vswhere_and_picks_last(self, fake_runner, capsys):
        runner = fake_runner("C:\\VS\\2019\r\nC:\\VS\\2022\r\n")
        path = find_vs_install_dir(make_settings(), ENVIRON, runner)

        assert path == "C:\\VS\\2022"
        assert len(runner.calls) == 1
        assert runner.calls[0][0] == INSTALLER + "\\vswhere.exe"
        assert runner.calls[0][1:] == get_vswhere_args(make_settings())
        assert runner.encodings == ["utf-8"]
        assert "install: C:\\VS\\2022" in capsys.readouterr().out

    def test_spawn_failure(self, fake_runner):
        runner = fake_runner(FileNotFoundError("no such file"))
        with pytest.raises(LocatorSpawnError) as excinfo:
            find_vs_install_dir(make_settings(), ENVIRON, runner)
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)

    def test_empty_output(self, fake_runner):
        runner = fake_runner("")
        with pytest.raises(NoCompatibleInstallationError):
            find_vs_install_dir(make_settings(), ENVIRON, runner)

    def test_verbose_prints_details(self, fake_runner, capsys):
        runner = fake_runner("C:\\VS\\2022\n", ("instanceId: 49b3d031\n", ""))
        path = find_vs_install_dir(make_settings(verbose=True), ENVIRON, runner)

        assert path == "C:\\VS\\2022"
        assert len(runner.calls) == 2
        assert "-property" not in runner.calls[1]
        assert "instanceId: 49b3d031" in capsys.readouterr().out

    @pytest.mark.parametrize("failure", [
        OSError("boom"),
        UnicodeDecodeError("utf-8", b"\x81", 0, 1, "boom"),
        RuntimeError("boom"),
    ])
    def test_verbose_details_failure_is_ignored(self, fake_runner, capsys,
                                                failure):
        runner = fake_runner("C:\\VS\\2022\n", failure)
        path = find_vs_install_dir(make_settings(verbose=True), ENVIRON, runner)

        assert path == "C:\\VS\\2022"
        assert "boom" in capsys.readouterr().err
