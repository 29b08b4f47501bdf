"""Fixtures building bundles as directories and as ZIP archives."""

import os
import plistlib
import stat
import tempfile
import zipfile
from pathlib import Path

import pytest

from cfbundle import Bundle


class Symlink:
    """Marks a symbolic link in a bundle description."""

    def __init__(self, target: "str | bytes"):
        self.target = target


def make_info_plist(**overrides: object) -> bytes:
    info = {
        "CFBundleDevelopmentRegion": "en",
        "CFBundleInfoDictionaryVersion": "6.0",
        "CFBundlePackageType": "APPL",
        "CFBundleShortVersionString": "1.0",
        "CFBundleVersion": "14",
    }
    info.update(overrides)
    return plistlib.dumps(info)


IOS_APP_FILES = {
    "Info.plist": make_info_plist(
        CFBundleExecutable="iOS App",
        CFBundleIdentifier="test.developer.iOS-App",
        CFBundleName="iOS App",
    ),
    "iOS App": b"\xcf\xfa\xed\xfe" + b"\x00" * 28,
    "PkgInfo": b"APPL????",
    "AppIcon60x60@2x.png": b"AppIcon60x60@2x",
    "AppIcon60x60@3x.png": b"AppIcon60x60@3x",
    "AppIcon76x76@2x~ipad.png": b"AppIcon76x76@2x~ipad",
    "AppIcon76x76~ipad.png": b"AppIcon76x76~ipad",
    "en.lproj/Test.strings": b'"greeting" = "Hello";',
    "fr.lproj/Test.strings": b'"greeting" = "Bonjour";',
}

MACOS_APP_FILES = {
    "Contents/Info.plist": make_info_plist(
        CFBundleExecutable="macOS App",
        CFBundleIdentifier="test.developer.macOS-App",
        CFBundleName="macOS App",
    ),
    "Contents/MacOS/macOS App": b"\xcf\xfa\xed\xfe" + b"\x00" * 28,
    "Contents/PkgInfo": b"APPL????",
    "Contents/Resources/Images/Icon.png": b"Icon",
    "Contents/Resources/Images/Icon~ipad.png": b"Icon~ipad",
    "Contents/Resources/en.lproj/Test.strings": b'"greeting" = "Hello";',
    "Contents/Resources/fr.lproj/Test.strings": b'"greeting" = "Bonjour";',
}

FRAMEWORK_FILES = {
    "Versions/A/Framework": b"\xcf\xfa\xed\xfe" + b"\x00" * 28,
    "Versions/A/Resources/Info.plist": make_info_plist(
        CFBundleExecutable="Framework",
        CFBundleIdentifier="test.developer.Framework",
        CFBundleName="Framework",
        CFBundlePackageType="FMWK",
    ),
    "Versions/A/Resources/en.lproj/Test.strings": b'"greeting" = "Hello";',
    "Versions/Current": Symlink("A"),
    "Framework": Symlink("Versions/Current/Framework"),
    "Resources": Symlink("Versions/Current/Resources"),
}


def build_tree(base: Path, files: dict) -> Path:
    """Write files (bytes, Symlink or None for a directory) under base."""
    base.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        path = base / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, Symlink):
            os.symlink(content.target, path)
        elif content is None:
            path.mkdir(exist_ok=True)
        else:
            path.write_bytes(content)
    return base


def _directory_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name.rstrip("/") + "/")
    info.external_attr = (stat.S_IFDIR | 0o755) << 16 | 0x10
    return info


def build_zip(
    target,
    files: dict,
    prefix: str = "",
    with_directories: bool = True,
) -> None:
    """Write files to a ZIP archive, symlinks included.

    Args:
        target: Path or binary file object receiving the archive
        files: Same description as build_tree()
        prefix: Directory prepended to every name (e.g. "My.app/")
        with_directories: Whether to write explicit directory entries
    """
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as archive:
        if with_directories:
            directories = set()
            for name in files:
                parent = os.path.dirname(prefix + name)
                while parent:
                    directories.add(parent)
                    parent = os.path.dirname(parent)
            for directory in sorted(directories):
                archive.writestr(_directory_info(directory), b"")
        for name, content in files.items():
            if isinstance(content, Symlink):
                info = zipfile.ZipInfo(prefix + name)
                info.external_attr = (stat.S_IFLNK | 0o755) << 16
                archive.writestr(info, content.target)
            elif content is None:
                archive.writestr(_directory_info(prefix + name), b"")
            else:
                archive.writestr(prefix + name, content)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


@pytest.fixture
def ios_app(temp_dir):
    """An iOS application bundle directory."""
    return build_tree(temp_dir / "iOS App.app", IOS_APP_FILES)


@pytest.fixture
def ios_ipa(temp_dir):
    """An .ipa archive containing the iOS application under Payload/."""
    path = temp_dir / "iOS App.ipa"
    build_zip(path, IOS_APP_FILES, prefix="Payload/iOS App.app/")
    return path


@pytest.fixture
def macos_app(temp_dir):
    """A macOS application bundle directory."""
    return build_tree(temp_dir / "macOS App.app", MACOS_APP_FILES)


@pytest.fixture
def macos_zip(temp_dir):
    """A ZIP archive containing the macOS application."""
    path = temp_dir / "macOS App.zip"
    build_zip(path, MACOS_APP_FILES, prefix="macOS App.app/")
    return path


@pytest.fixture
def framework_dir(temp_dir):
    """A versioned framework directory with symbolic links."""
    return build_tree(temp_dir / "Framework.framework", FRAMEWORK_FILES)


@pytest.fixture
def framework_zip(temp_dir):
    """A ZIP archive containing the versioned framework."""
    path = temp_dir / "Framework.zip"
    build_zip(path, FRAMEWORK_FILES, prefix="Framework.framework/")
    return path


@pytest.fixture(params=["app", "ipa"])
def ios_bundle(request, temp_dir):
    """The iOS application, opened from a directory and from an .ipa."""
    if request.param == "app":
        path = build_tree(temp_dir / "iOS App.app", IOS_APP_FILES)
    else:
        path = temp_dir / "iOS App.ipa"
        build_zip(path, IOS_APP_FILES, prefix="Payload/iOS App.app/")
    bundle = Bundle.open(path)
    yield bundle
    bundle.close()
