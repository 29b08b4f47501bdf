"""Tests for the command-line interface."""

import logging
import subprocess
import sys
from pathlib import Path

import pytest

from cfbundle import ENV_LANGUAGES, ENV_PRODUCT, LogFormatter, main

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, temp_dir):
    monkeypatch.delenv(ENV_LANGUAGES, raising=False)
    monkeypatch.delenv(ENV_PRODUCT, raising=False)
    # keep any configuration file of the working directory out of the way
    monkeypatch.chdir(temp_dir)


def run_main(*args):
    """Run main() with arguments, returning the exit code."""
    try:
        main([str(arg) for arg in args])
    except SystemExit as e:
        return e.code
    return 0


class TestInfo:
    """Tests for the 'info' subcommand."""

    def test_ios_app(self, ios_app, capsys):
        assert run_main("info", ios_app) == 0
        out = capsys.readouterr().out
        assert "Identifier: test.developer.iOS-App" in out
        assert "Package type: APPL" in out
        assert "Display name: -" in out
        assert "Localizations: en, fr" in out

    def test_macos_zip(self, macos_zip, capsys):
        assert run_main("info", macos_zip) == 0
        out = capsys.readouterr().out
        assert "Executable: Contents/MacOS/macOS App" in out

    def test_not_a_bundle(self, temp_dir, capsys):
        assert run_main("info", temp_dir / "Missing.app") == 1
        assert capsys.readouterr().out == ""


class TestLs:
    """Tests for the 'ls' subcommand."""

    def test_root(self, ios_ipa, capsys):
        assert run_main("ls", ios_ipa) == 0
        lines = capsys.readouterr().out.splitlines()
        assert "Info.plist" in lines
        assert "en.lproj/" in lines

    def test_directory(self, framework_zip, capsys):
        assert run_main("ls", framework_zip, "Resources") == 0
        assert capsys.readouterr().out.splitlines() == [
            "Resources/Info.plist",
            "Resources/en.lproj/",
        ]

    def test_missing_directory(self, ios_app):
        assert run_main("ls", ios_app, "Missing") == 1


class TestLocalizations:
    """Tests for the 'localizations' subcommand."""

    def test_all(self, ios_app, capsys):
        assert run_main("localizations", ios_app) == 0
        assert capsys.readouterr().out.splitlines() == ["en", "fr"]

    def test_preferred(self, ios_app, capsys):
        assert run_main("localizations", ios_app, "-l", "fr-CA") == 0
        assert capsys.readouterr().out.splitlines() == ["fr"]

    def test_languages_from_environment(self, ios_app, capsys, monkeypatch):
        monkeypatch.setenv(ENV_LANGUAGES, "de,fr")
        assert run_main("localizations", ios_app) == 0
        assert capsys.readouterr().out.splitlines() == ["fr"]


class TestFind:
    """Tests for the 'find' subcommand."""

    def test_development_localization(self, ios_app, capsys):
        assert run_main("find", ios_app, "Test", "-e", "strings") == 0
        assert capsys.readouterr().out == "en.lproj/Test.strings\n"

    def test_preferred_language(self, ios_ipa, capsys):
        assert (
            run_main("find", ios_ipa, "Test", "-e", "strings", "-l", "fr-FR")
            == 0
        )
        assert capsys.readouterr().out == "fr.lproj/Test.strings\n"

    def test_product(self, ios_app, capsys):
        assert (
            run_main("find", ios_app, "AppIcon76x76@2x", "-e", "png", "-p", "ipad")
            == 0
        )
        assert capsys.readouterr().out == "AppIcon76x76@2x~ipad.png\n"

    def test_regex_all(self, ios_app, capsys):
        assert run_main("find", ios_app, "^AppIcon60", "--regex", "--all") == 0
        assert capsys.readouterr().out.splitlines() == [
            "AppIcon60x60@2x.png",
            "AppIcon60x60@3x.png",
        ]

    def test_invalid_regex(self, ios_app, capsys):
        assert run_main("find", ios_app, "(", "--regex") == 1
        assert capsys.readouterr().out == ""

    def test_no_match(self, ios_app, capsys):
        assert run_main("find", ios_app, "Missing") == 1
        assert capsys.readouterr().out == ""

    def test_subdirectory(self, macos_app, capsys):
        assert run_main("find", macos_app, "-d", "Images", "--all") == 0
        assert capsys.readouterr().out == (
            "Contents/Resources/Images/Icon.png\n"
        )

    def test_config_file(self, ios_app, temp_dir, capsys):
        config = temp_dir / "find.toml"
        config.write_text('[find]\nlanguages = ["fr"]\n')
        assert (
            run_main("find", ios_app, "Test", "-e", "strings", "-c", config)
            == 0
        )
        assert capsys.readouterr().out == "fr.lproj/Test.strings\n"

    def test_product_from_config_in_cwd(self, ios_app, temp_dir, capsys):
        (temp_dir / ".cfbundle.toml").write_text('[find]\nproduct = "ipad"\n')
        assert run_main("find", ios_app, "AppIcon76x76", "-e", "png") == 0
        assert capsys.readouterr().out == "AppIcon76x76~ipad.png\n"

    def test_missing_config_file(self, ios_app, temp_dir):
        assert run_main("find", ios_app, "-c", temp_dir / "nope.toml") == 1


class TestCat:
    """Tests for the 'cat' subcommand."""

    def test_file(self, ios_ipa, capsysbinary):
        assert run_main("cat", ios_ipa, "PkgInfo") == 0
        assert capsysbinary.readouterr().out == b"APPL????"

    def test_through_symlink(self, framework_zip, capsysbinary):
        assert (
            run_main("cat", framework_zip, "Resources/en.lproj/Test.strings")
            == 0
        )
        assert capsysbinary.readouterr().out == b'"greeting" = "Hello";'

    def test_missing_file(self, ios_app, capsysbinary):
        assert run_main("cat", ios_app, "Missing") == 1
        assert capsysbinary.readouterr().out == b""


class TestMain:
    """Tests for the main parser."""

    def test_no_subcommand(self):
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 2

    def test_invalid_subcommand(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["bogus"])
        assert excinfo.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert capsys.readouterr().out.startswith("cfbundle ")

    def test_module_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "cfbundle", "--help"],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
        )
        assert result.returncode == 0
        for command in ("info", "ls", "localizations", "find", "cat"):
            assert command in result.stdout

    def test_find_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "cfbundle", "find", "--help"],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
        )
        assert result.returncode == 0
        assert "--product" in result.stdout
        assert "--language" in result.stdout
        assert "--regex" in result.stdout


class TestLogging:
    """Tests for the log formatter."""

    def make_record(self, level=logging.INFO):
        record = logging.LogRecord(
            "Bundle", level, __file__, 1, "Detected layout %s", ("IOS",), None
        )
        record.relativeCreated = 61250
        return record

    def test_plain(self):
        formatter = LogFormatter(use_color=False)
        assert formatter.format(self.make_record()) == (
            "cfbundle: info: Detected layout IOS"
        )

    def test_verbose(self):
        formatter = LogFormatter(verbose=True, use_color=False)
        assert formatter.format(self.make_record(logging.DEBUG)) == (
            "00:01:01.250 cfbundle: debug: Bundle: Detected layout IOS"
        )

    def test_color(self):
        formatter = LogFormatter(use_color=True)
        output = formatter.format(self.make_record(logging.ERROR))
        assert output == (
            "cfbundle: \x1b[31;20merror\x1b[0m: Detected layout IOS"
        )

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "root", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        output = LogFormatter(use_color=False).format(record)
        assert output.startswith("cfbundle: error: failed\nTraceback")
        assert output.endswith("ValueError: boom")
