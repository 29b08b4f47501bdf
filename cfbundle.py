#!/usr/bin/env python3
"""cfbundle - read macOS and iOS bundles without the host operating system.

This module provides tools for:
1. Uniform read-only access to bundles stored as directories or ZIP archives
   (including .ipa archives where the bundle lives under Payload/)
2. Reading the bundle's Info.plist and its well-known keys
3. Finding resources the way the platform does: localized according to a
   list of preferred languages, with product variants (~ipad, ~iphone) and
   without duplicates across localization directories

Usage (CLI):
    # Show the bundle's Info.plist summary
    cfbundle info "My App.app"

    # Find a localized resource
    cfbundle find "My App.ipa" Localizable -e strings -l fr-CA

Usage (API):
    from cfbundle import Bundle

    with Bundle.open("My App.app") as bundle:
        print(bundle.identifier)
        resource = bundle.find_resource(
            "AppIcon76x76@2x", extension="png", product="ipad"
        )
        data = resource.get_bytes()
"""

import argparse
import datetime
import enum
import errno
import importlib.util
import logging
import os
import plistlib
import posixpath
import re
import stat
import sys
import zipfile
from pathlib import Path
from typing import IO, Iterator, NamedTuple

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str

# Information property list keys
INFO_KEY_BUNDLE_DEVELOPMENT_REGION = "CFBundleDevelopmentRegion"
INFO_KEY_BUNDLE_DISPLAY_NAME = "CFBundleDisplayName"
INFO_KEY_BUNDLE_EXECUTABLE = "CFBundleExecutable"
INFO_KEY_BUNDLE_IDENTIFIER = "CFBundleIdentifier"
INFO_KEY_BUNDLE_NAME = "CFBundleName"
INFO_KEY_BUNDLE_PACKAGE_TYPE = "CFBundlePackageType"
INFO_KEY_BUNDLE_SHORT_VERSION_STRING = "CFBundleShortVersionString"
INFO_KEY_BUNDLE_VERSION = "CFBundleVersion"

# Bundle package types (four-letter OS Type codes)
PACKAGE_TYPE_APPLICATION = "APPL"
PACKAGE_TYPE_BUNDLE = "BNDL"
PACKAGE_TYPE_FRAMEWORK = "FMWK"

# Separator used by storage-relative paths, whatever the host OS
SEPARATOR = "/"

# File extension of localization directories
LOCALIZATION_EXTENSION = ".lproj"

# Prefix of product variants in resource names (e.g. Icon~ipad.png)
PRODUCT_PREFIX = "~"

# File extensions recognized as ZIP archives containing a bundle
ARCHIVE_EXTENSIONS = (".ipa", ".zip")

# Directory holding the application inside .ipa archives
ARCHIVE_PAYLOAD_DIR = "Payload"

# Upper bound on symlinks followed while resolving one path (as ELOOP)
MAX_SYMLINKS = 40

# Environment variable names
ENV_LANGUAGES = "CFBUNDLE_LANGUAGES"
ENV_PRODUCT = "CFBUNDLE_PRODUCT"

# ----------------------------------------------------------------------------
# Optional dotenv support (zero production dependencies)


def _load_dotenv() -> None:
    """Attempt to load .env file if python-dotenv is available."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv()


# ----------------------------------------------------------------------------
# Configuration file support


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load configuration from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .cfbundle.toml in current directory
    3. cfbundle.toml in current directory

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Raises:
        ConfigurationError: If the explicit file is missing or a file
            cannot be parsed

    Example .cfbundle.toml:
        [find]
        languages = ["fr-CA", "en"]
        product = "ipad"
    """
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file does not exist: {config_path}"
            )
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".cfbundle.toml",
            cwd / "cfbundle.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(
                    f"Invalid configuration file {path}: {e}"
                ) from e
            return data

    return {}


def get_config_value(
    config: dict[str, object],
    section: str,
    key: str,
    default: object = None,
) -> object:
    """Get a value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "find")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    return section_config.get(key, default)


def resolve_languages(
    languages: list[str] | None, config: dict[str, object]
) -> list[str]:
    """Return the preferred languages from arguments, environment or config.

    Raises:
        ConfigurationError: If the configured value is not a list of strings
    """
    if languages:
        return list(languages)
    env = os.environ.get(ENV_LANGUAGES)
    if env:
        return [lang.strip() for lang in env.split(",") if lang.strip()]
    value = get_config_value(config, "find", "languages", [])
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(
        isinstance(lang, str) for lang in value
    ):
        raise ConfigurationError("find.languages must be a list of strings")
    return value


def resolve_product(
    product: str | None, config: dict[str, object]
) -> str | None:
    """Return the product from arguments, environment or config."""
    if product:
        return product
    env = os.environ.get(ENV_PRODUCT)
    if env:
        return env
    value = get_config_value(config, "find", "product")
    if value is not None and not isinstance(value, str):
        raise ConfigurationError("find.product must be a string")
    return value


# ----------------------------------------------------------------------------
# Error handling


class CFBundleError(Exception):
    """Base exception class for cfbundle errors."""


class NotFoundError(CFBundleError, FileNotFoundError):
    """Exception raised when a path does not exist in a bundle's storage."""

    def __init__(self, path: str):
        super().__init__(errno.ENOENT, os.strerror(errno.ENOENT), path)


class NotABundleError(CFBundleError, ValueError):
    """Exception raised when the input cannot be opened as a bundle."""


class NoBundleFoundError(NotABundleError):
    """Exception raised when a ZIP archive does not contain any bundle."""


class AmbiguousBundleError(NotABundleError):
    """Exception raised when a ZIP archive contains several bundles."""


class ArchiveSupportError(CFBundleError):
    """Exception raised when ZIP archives cannot be read by the runtime."""


class ConfigurationError(CFBundleError):
    """Exception raised when configuration is invalid."""


# ----------------------------------------------------------------------------
# Logging configuration


class LogFormatter(logging.Formatter):
    """Logging formatter for the command-line interface.

    Records read like argparse diagnostics ("cfbundle: error: ..."), so
    failures look the same whether they come from the parser or a command.
    In verbose mode each record is prefixed with the time elapsed since
    startup and names the logger that emitted it.

    Args:
        verbose: Whether to show elapsed time and logger names
        use_color: Whether to color the level name
        prog: Program name starting each record
    """

    COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[32;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(
        self,
        verbose: bool = False,
        use_color: bool = True,
        prog: str = "cfbundle",
    ):
        super().__init__()
        self.verbose = verbose
        self.use_color = use_color
        self.prog = prog

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname.lower()
        if self.use_color:
            level = f"{self.COLORS.get(record.levelno, '')}{level}{self.RESET}"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if not self.verbose:
            return f"{self.prog}: {level}: {message}"
        elapsed = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        return (
            f"{elapsed:%H:%M:%S}.{elapsed.microsecond // 1000:03d} "
            f"{self.prog}: {level}: {record.name}: {message}"
        )


def setup_logging(debug: bool = False, use_color: bool = True) -> None:
    """Configure logging for the command-line interface.

    Records go to stderr, leaving stdout to command output. Colors are
    only used when stderr is a terminal.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    use_color = use_color and stream_handler.stream.isatty()
    stream_handler.setFormatter(LogFormatter(debug, use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
    )


# ----------------------------------------------------------------------------
# Path utilities


class ResourcePath(NamedTuple):
    """The four components of a resource path.

    The product is either empty or starts with a tilde, the extension is
    either empty or starts with a dot.
    """

    directory: str
    name: str
    product: str
    extension: str


def join(*parts: "str | os.PathLike[str] | None") -> str:
    """Join path components into a canonical storage path.

    Components that are None, empty or a single dot are dropped, as are
    empty segments and trailing separators. The result is "." when nothing
    remains, and keeps a single leading separator when the first remaining
    segment was absolute.

    Example:
        >>> join("Contents", None, "./Resources/", "en.lproj")
        'Contents/Resources/en.lproj'
    """
    segments: list[str] = []
    for part in parts:
        if part is None:
            continue
        part = os.fspath(part)
        if part:
            segments.extend(part.split(SEPARATOR))
    segments = [segment for segment in segments if segment != "."]
    if not segments:
        return "."
    absolute = segments[0] == ""
    path = SEPARATOR.join(segment for segment in segments if segment)
    if absolute:
        return SEPARATOR + path
    return path or "."


def split_resource(path: str) -> ResourcePath:
    """Split a resource path into directory, name, product and extension.

    The product is split on the last tilde of the name; a name that starts
    or ends with the tilde has no product.

    Example:
        >>> split_resource("Images/Icon~ipad.png")
        ResourcePath(directory='Images', name='Icon', product='~ipad', extension='.png')
    """
    directory, filename = posixpath.split(path)
    stem, extension = posixpath.splitext(filename)
    name, product = _split_name_and_product(stem)
    return ResourcePath(directory or ".", name, product, extension)


def join_resource(
    directory: str, name: str, product: str, extension: str
) -> str:
    """Return the path formed by joining resource components.

    This is the inverse of split_resource().
    """
    return join(directory, name + product + extension)


def _split_name_and_product(stem: str) -> tuple[str, str]:
    name, sep, product = stem.rpartition(PRODUCT_PREFIX)
    if not sep or not name or not product:
        return stem, ""
    return name, PRODUCT_PREFIX + product


def _contained(path: str) -> str | None:
    """Resolve ".." segments, returning None for paths above the bundle."""
    path = posixpath.normpath(join(path))
    if path == ".." or path.startswith("../"):
        return None
    return path


# ----------------------------------------------------------------------------
# Storage


class Storage:
    """Read-only access to the files of a bundle.

    Paths are relative to the root of the bundle and always use "/" as a
    separator. The query methods (exists, is_file, is_dir) never raise and
    return False for absent paths, so callers can probe speculatively.

    Storages are context managers: leaving the block closes the storage.

    Most of the time, you don't need to concern yourself with storages as
    Bundle automatically detects and instantiates the appropriate one.
    """

    def exists(self, path: str) -> bool:
        """Return True if the path exists in the storage."""
        raise NotImplementedError

    def is_file(self, path: str) -> bool:
        """Return True if the path is a regular file in the storage."""
        raise NotImplementedError

    def is_dir(self, path: str) -> bool:
        """Return True if the path is a directory in the storage."""
        raise NotImplementedError

    def open(self, path: str) -> IO[bytes]:
        """Open a file for reading in binary mode.

        Raises:
            NotFoundError: If the path does not exist
        """
        raise NotImplementedError

    def iterdir(self, path: str) -> Iterator[str]:
        """Iterate over the children of a directory.

        Children are sorted by name and prefixed with the given path.

        Raises:
            NotFoundError: If the path is not a directory
        """
        raise NotImplementedError

    def get_bytes(self, path: str) -> bytes:
        """Return the content of a file."""
        with self.open(path) as data:
            return data.read()

    def close(self) -> None:
        """Release the resources held by the storage.

        The default implementation does nothing.
        """

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class FileSystemStorage(Storage):
    """A bundle storage that reads from the file system.

    Every query is a fresh probe of the file system.

    Args:
        root: Path of the bundle directory
    """

    def __init__(self, root: Pathlike):
        self.root = Path(root)
        self.log = logging.getLogger(self.__class__.__name__)
        self.log.debug("Opened directory bundle %s", self.root)

    def _find(self, path: str) -> str | None:
        contained = _contained(path)
        if contained is None:
            return None
        entry = join(self.root, contained)
        if os.path.exists(entry):
            return entry
        return None

    def _find_or_raise(self, path: str) -> str:
        entry = self._find(path)
        if entry is None:
            raise NotFoundError(path)
        return entry

    def exists(self, path: str) -> bool:
        return self._find(path) is not None

    def is_file(self, path: str) -> bool:
        entry = self._find(path)
        return entry is not None and os.path.isfile(entry)

    def is_dir(self, path: str) -> bool:
        entry = self._find(path)
        return entry is not None and os.path.isdir(entry)

    def open(self, path: str) -> IO[bytes]:
        return open(self._find_or_raise(path), "rb")

    def iterdir(self, path: str) -> Iterator[str]:
        directory = self._find_or_raise(path)
        if not os.path.isdir(directory):
            raise NotFoundError(path)
        return self._iterdir(directory, path)

    def _iterdir(self, directory: str, path: str) -> Iterator[str]:
        for name in sorted(os.listdir(directory)):
            yield join(path, name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({str(self.root)!r})"


class ArchiveEntry:
    """An entry of a ZIP archive.

    Names never end with a separator. Directories that only appear as the
    parent of other entries have no ZipInfo.
    """

    def __init__(
        self,
        name: str,
        is_dir: bool = False,
        is_symlink: bool = False,
        info: zipfile.ZipInfo | None = None,
    ):
        self.name = name
        self.is_dir = is_dir
        self.is_symlink = is_symlink
        self.info = info

    @property
    def is_file(self) -> bool:
        return not (self.is_dir or self.is_symlink)

    @property
    def parent(self) -> str | None:
        """Name of the parent directory, or None at the archive root."""
        return posixpath.dirname(self.name) or None

    def __repr__(self) -> str:
        kind = "dir" if self.is_dir else "symlink" if self.is_symlink else "file"
        return f"ArchiveEntry({self.name!r}, {kind})"


class ZipArchive:
    """Reader for the entries of a ZIP archive.

    Symbolic links are recognized from the Unix mode stored in the external
    attributes, as written by Info-ZIP and ditto.

    Closing the archive never closes a file object passed as source.

    Args:
        source: Path to the archive or a seekable binary file object
    """

    def __init__(self, source: "Pathlike | IO[bytes]"):
        self.source = source
        self.log = logging.getLogger(self.__class__.__name__)
        self._zipfile = zipfile.ZipFile(source)
        self._entries = self._load_entries()
        self.log.debug(
            "Read %d entries from ZIP archive %s", len(self._entries), self
        )

    def _load_entries(self) -> dict[str, ArchiveEntry]:
        entries: dict[str, ArchiveEntry] = {}
        for info in self._zipfile.infolist():
            name = info.filename.rstrip(SEPARATOR)
            if not name:
                continue
            is_symlink = stat.S_ISLNK(info.external_attr >> 16)
            entries[name] = ArchiveEntry(
                name,
                is_dir=info.is_dir() and not is_symlink,
                is_symlink=is_symlink,
                info=info,
            )
        for name in list(entries):
            parent = posixpath.dirname(name)
            while parent and parent not in entries:
                entries[parent] = ArchiveEntry(parent, is_dir=True)
                parent = posixpath.dirname(parent)
        return dict(sorted(entries.items()))

    def entries(self) -> list[ArchiveEntry]:
        """Return all the entries, sorted by name."""
        return list(self._entries.values())

    def find_entry(self, name: str) -> ArchiveEntry | None:
        return self._entries.get(name)

    def open(self, entry: ArchiveEntry) -> IO[bytes]:
        if entry.info is None or entry.is_dir:
            raise IsADirectoryError(
                errno.EISDIR, os.strerror(errno.EISDIR), entry.name
            )
        return self._zipfile.open(entry.info)

    def read(self, entry: ArchiveEntry) -> bytes:
        with self.open(entry) as data:
            return data.read()

    def close(self) -> None:
        self._zipfile.close()

    def __str__(self) -> str:
        if isinstance(self.source, (str, os.PathLike)):
            return os.fspath(self.source)
        return str(getattr(self.source, "name", repr(self.source)))


class ZipStorage(Storage):
    """A bundle storage that reads from a ZIP archive.

    Symbolic links stored in the archive are followed relative to the
    directory containing the link. Links pointing outside of the bundle, to
    absolute paths, or back to a link already followed resolve to nothing.

    Args:
        archive: The archive containing the bundle
        root: Name of the bundle's directory entry within the archive
        owns_archive: Whether close() also closes the archive. Pass False
            when the caller keeps responsibility for the archive's source.
    """

    def __init__(
        self, archive: ZipArchive, root: str, owns_archive: bool = True
    ):
        self.archive = archive
        self.root = root
        self.owns_archive = owns_archive
        self.closed = False
        self.log = logging.getLogger(self.__class__.__name__)
        self.log.debug("Opened bundle %s in ZIP archive %s", root, archive)

    def exists(self, path: str) -> bool:
        return self._find(path) is not None

    def is_file(self, path: str) -> bool:
        entry = self._find(path)
        return entry is not None and entry.is_file

    def is_dir(self, path: str) -> bool:
        entry = self._find(path)
        return entry is not None and entry.is_dir

    def open(self, path: str) -> IO[bytes]:
        return self.archive.open(self._find_or_raise(path))

    def iterdir(self, path: str) -> Iterator[str]:
        directory = self._find_or_raise(path)
        if not directory.is_dir:
            raise NotFoundError(path)
        return self._iterdir(directory, path)

    def _iterdir(self, directory: ArchiveEntry, path: str) -> Iterator[str]:
        for entry in self.archive.entries():
            if entry.parent == directory.name:
                yield join(path, posixpath.basename(entry.name))

    def close(self) -> None:
        """Close the storage, and the archive unless it is not owned."""
        if self.closed:
            return
        self.closed = True
        if self.owns_archive:
            self.archive.close()

    def _find_or_raise(self, path: str) -> ArchiveEntry:
        entry = self._find(path)
        if entry is None:
            raise NotFoundError(path)
        return entry

    def _find(
        self, path: str, symlinks: set[str] | None = None
    ) -> ArchiveEntry | None:
        # symlinks holds the links followed by the current resolution chain
        if symlinks is None:
            symlinks = set()
        contained = _contained(path)
        if contained is None:
            return None
        path = contained
        entry = self.archive.find_entry(join(self.root, path))
        if entry is None:
            return self._find_in_parent(path, symlinks)
        return self._dereference(entry, path, symlinks)

    def _find_in_parent(
        self, path: str, symlinks: set[str]
    ) -> ArchiveEntry | None:
        directory, filename = posixpath.split(path)
        if filename in ("", ".", ".."):
            return None
        parent = self._find(directory or ".", set(symlinks))
        if parent is None or not parent.is_dir:
            return None
        entry = self.archive.find_entry(join(parent.name, filename))
        if entry is None:
            return None
        return self._dereference(entry, path, symlinks)

    def _dereference(
        self, entry: ArchiveEntry, path: str, symlinks: set[str]
    ) -> ArchiveEntry | None:
        if not entry.is_symlink:
            return entry
        if path in symlinks or len(symlinks) >= MAX_SYMLINKS:
            self.log.debug("Symlink loop detected at %s", path)
            return None
        symlinks.add(path)
        try:
            target = self.archive.read(entry).decode("utf-8")
        except (UnicodeDecodeError, zipfile.BadZipFile, RuntimeError) as e:
            self.log.debug("Unreadable symlink %s: %s", path, e)
            return None
        if not target or target.startswith(SEPARATOR):
            return None
        resolved = _contained(join(posixpath.dirname(path), target))
        if resolved is None:
            return None
        return self._find(resolved, symlinks)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({str(self.archive)!r}, {self.root!r})"


# ----------------------------------------------------------------------------
# Storage detection


class SourceKind(enum.Enum):
    """The kinds of input accepted when opening a bundle."""

    STORAGE = "storage"
    STREAM = "stream"
    PATH = "path"


def source_kind(file: object) -> SourceKind | None:
    """Classify the input of open_storage(), or None if unsupported."""
    if isinstance(file, Storage):
        return SourceKind.STORAGE
    if isinstance(file, (str, os.PathLike)):
        return SourceKind.PATH
    if hasattr(file, "read") and hasattr(file, "seek"):
        return SourceKind.STREAM
    return None


def open_storage(file: object) -> Storage:
    """Create the storage for a bundle.

    - A Storage is returned as is.
    - A binary file object is read as a ZIP archive. The storage does not
      own the file object, which stays open when the storage is closed.
    - A path to a directory with an extension (My.app, My.framework) opens
      a FileSystemStorage.
    - A path to a .zip or .ipa file opens a ZipStorage. The archive must
      contain a single bundle at its root or inside a Payload directory.

    Raises:
        NotABundleError: If the input cannot be opened as a bundle
        NoBundleFoundError: If the archive does not contain any bundle
        AmbiguousBundleError: If the archive contains several bundles
        ArchiveSupportError: If ZIP archives cannot be decompressed
    """
    kind = source_kind(file)
    if kind is SourceKind.STORAGE:
        return file  # type: ignore[return-value]
    if kind is SourceKind.STREAM:
        return _open_zip(file, owns_archive=False)  # type: ignore[arg-type]
    if kind is SourceKind.PATH:
        storage = _open_path(Path(file))  # type: ignore[arg-type]
        if storage is not None:
            return storage
        raise NotABundleError(f"{os.fspath(file)!r} is not a bundle")  # type: ignore[arg-type]
    raise NotABundleError(f"{file!r} is not a bundle")


def _open_path(path: Path) -> Storage | None:
    if path.is_dir() and path.suffix:
        return FileSystemStorage(path)
    if path.suffix in ARCHIVE_EXTENSIONS and path.is_file():
        return _open_zip(path)
    return None


def _has_archive_support() -> bool:
    """Return True if the runtime can decompress ZIP archives."""
    return importlib.util.find_spec("zlib") is not None


def _open_zip(
    source: "Pathlike | IO[bytes]", owns_archive: bool = True
) -> ZipStorage:
    if not _has_archive_support():
        raise ArchiveSupportError(
            f"cannot open ZIP archive {_describe(source)!r} without zlib"
        )
    try:
        archive = ZipArchive(source)
    except zipfile.BadZipFile as e:
        raise NotABundleError(f"{_describe(source)!r} is not a bundle") from e
    try:
        entry = _matching_entry(archive)
    except NotABundleError:
        archive.close()
        raise
    return ZipStorage(archive, entry.name, owns_archive=owns_archive)


def _matching_entry(archive: ZipArchive) -> ArchiveEntry:
    entries = [
        entry
        for entry in archive.entries()
        if entry.is_dir
        and entry.parent in (None, ARCHIVE_PAYLOAD_DIR)
        and posixpath.splitext(entry.name)[1]
    ]
    if len(entries) == 1:
        return entries[0]
    if not entries:
        raise NoBundleFoundError(f"no bundle found in ZIP archive {str(archive)!r}")
    raise AmbiguousBundleError(
        f"several bundles found in ZIP archive {str(archive)!r}"
    )


def _describe(source: object) -> str:
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    return str(getattr(source, "name", source))


# ----------------------------------------------------------------------------
# Localization


def localizations_in(bundle: "Bundle") -> list[str]:
    """Return the localizations contained in a bundle.

    Localizations are the <identifier>.lproj directories found in the
    bundle's resources directory.
    """
    storage = bundle.storage
    directory = bundle.resources_directory
    if not storage.is_dir(directory):
        return []
    localizations = []
    for path in storage.iterdir(directory):
        stem, extension = posixpath.splitext(posixpath.basename(path))
        if extension == LOCALIZATION_EXTENSION and storage.is_dir(path):
            localizations.append(stem)
    return localizations


def preferred_localizations(
    localizations: list[str], preferred_languages: list[str]
) -> list[str]:
    """Return the ordered localizations matching the preferred languages.

    Languages are tried in order and the first one with any match wins:

    1. The language itself and its truncated forms (fr-CA, then fr), most
       specific first.
    2. Otherwise, the first localization for another region of the same
       language (gsw-FR matches gsw-CH).

    Args:
        localizations: The localization identifiers of a bundle
        preferred_languages: The user's preferred languages, most preferred
            first

    Returns:
        The matching localizations, or an empty list if none matches
    """
    for language in preferred_languages:
        language = str(language)
        result = _matching_localizations(localizations, language)
        if result:
            return result
        result = _alternate_regional_localizations(localizations, language)
        if result:
            return result
    return []


def _matching_localizations(
    localizations: list[str], language: str
) -> list[str]:
    result = []
    while language:
        if language in localizations:
            result.append(language)
        language = language.rpartition("-")[0]
    return result


def _alternate_regional_localizations(
    localizations: list[str], language: str
) -> list[str]:
    while True:
        language = language.rpartition("-")[0]
        if not language:
            return []
        prefix = language + "-"
        for localization in localizations:
            if localization.startswith(prefix):
                return [localization]


# ----------------------------------------------------------------------------
# Resources


class NameMatcher:
    """Base class of the resource name predicates."""

    def matches(self, name: str) -> bool:
        raise NotImplementedError


class AnyName(NameMatcher):
    """Matches any resource name."""

    def matches(self, name: str) -> bool:
        return True

    def __repr__(self) -> str:
        return "AnyName()"


class LiteralName(NameMatcher):
    """Matches a resource name exactly."""

    def __init__(self, name: str):
        self.name = name

    def matches(self, name: str) -> bool:
        return name == self.name

    def __repr__(self) -> str:
        return f"LiteralName({self.name!r})"


class PatternName(NameMatcher):
    """Matches resource names where the regular expression is found.

    Anchor the pattern (^...$) to match whole names.
    """

    def __init__(self, pattern: "str | re.Pattern[str]"):
        self.pattern = re.compile(pattern)

    def matches(self, name: str) -> bool:
        return self.pattern.search(name) is not None

    def __repr__(self) -> str:
        return f"PatternName({self.pattern.pattern!r})"


def name_matcher(
    name: "str | re.Pattern[str] | NameMatcher | None",
) -> NameMatcher:
    """Return the matcher for a name given as None, a string or a pattern."""
    if name is None:
        return AnyName()
    if isinstance(name, NameMatcher):
        return name
    if isinstance(name, re.Pattern):
        return PatternName(name)
    return LiteralName(name)


class Predicate:
    """The criteria of one resource search.

    The predicate also remembers the (name, extension) pairs already
    matched, so a resource is yielded at most once per search even when
    several localization directories contain it.

    Args:
        name: The name to match, a pattern, or None to match any name
        extension: The extension to match, with or without the leading dot,
            or None to match any extension
        product: The product to match, with or without the leading tilde,
            or None to match resources without product
    """

    def __init__(
        self,
        name: "str | re.Pattern[str] | NameMatcher | None" = None,
        extension: str | None = None,
        product: str | None = None,
    ):
        self.name = name_matcher(name)
        self.extension = self._normalize_extension(extension)
        self.product = self._normalize_product(product)
        self._keys: set[tuple[str, str]] = set()

    @staticmethod
    def _normalize_extension(extension: str | None) -> str | None:
        if not extension:
            return None
        return extension if extension.startswith(".") else "." + extension

    @staticmethod
    def _normalize_product(product: str | None) -> str:
        if not product:
            return ""
        if product.startswith(PRODUCT_PREFIX):
            return product
        return PRODUCT_PREFIX + product

    def match_extension(self, extension: str) -> bool:
        return self.extension is None or extension == self.extension

    def match_name(self, name: str) -> bool:
        return self.name.matches(name)

    def uniq(self, name: str, extension: str) -> bool:
        """Return True the first time a name and extension are seen."""
        key = (name, extension)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True


class EnumeratorState(enum.Enum):
    UNLOCALIZED = "unlocalized"
    LOCALIZED = "localized"
    EXHAUSTED = "exhausted"


class ResourceEnumerator:
    """Walks the directories that may contain the resources of a bundle.

    Directories are probed in this order, each at most once: the
    unlocalized directory, the preferred localizations, then the
    development localization. Localization directories that do not exist
    are skipped. A directory is only listed once the previous one is
    exhausted.

    Args:
        bundle: The bundle that contains the resources
        subdirectory: The bundle subdirectory to search
        localization: A localization to search instead of the preferred
            ones
        preferred_languages: The user's preferred languages
    """

    def __init__(
        self,
        bundle: "Bundle",
        subdirectory: str | None = None,
        localization: str | None = None,
        preferred_languages: list[str] | None = None,
    ):
        self.bundle = bundle
        self.directory = join(bundle.resources_directory, subdirectory)
        self.localizations = self._localizations_for(
            localization, preferred_languages
        )
        self.state = EnumeratorState.UNLOCALIZED
        self.log = logging.getLogger(self.__class__.__name__)
        self._index = -1
        self._entries: Iterator[str] | None = None

    def _localizations_for(
        self, localization: str | None, preferred_languages: list[str] | None
    ) -> list[str]:
        if localization:
            candidates = [str(localization)]
        elif preferred_languages:
            candidates = [
                *self.bundle.preferred_localizations(preferred_languages),
                self.bundle.development_localization,
            ]
        else:
            candidates = [self.bundle.development_localization]
        return [
            candidate
            for candidate in dict.fromkeys(candidates)
            if candidate is not None
        ]

    @property
    def current_directory(self) -> str | None:
        """The directory being listed, or None once exhausted."""
        if self.state is EnumeratorState.UNLOCALIZED:
            return self.directory
        if self.state is EnumeratorState.LOCALIZED:
            localization = self.localizations[self._index]
            return join(self.directory, localization + LOCALIZATION_EXTENSION)
        return None

    def advance(self) -> str | None:
        """Return the path of the next candidate, or None when exhausted."""
        while self.state is not EnumeratorState.EXHAUSTED:
            if self._entries is None:
                self._entries = self._list(self.current_directory)
            path = next(self._entries, None)
            if path is not None:
                return path
            self._next_directory()
        return None

    def _list(self, directory: str) -> Iterator[str]:
        storage = self.bundle.storage
        if not storage.is_dir(directory):
            self.log.debug("Skipping missing directory %s", directory)
            return iter(())
        self.log.debug("Listing %s", directory)
        return storage.iterdir(directory)

    def _next_directory(self) -> None:
        self._entries = None
        self._index += 1
        if self._index < len(self.localizations):
            self.state = EnumeratorState.LOCALIZED
        else:
            self.state = EnumeratorState.EXHAUSTED

    def __iter__(self) -> Iterator[str]:
        while True:
            path = self.advance()
            if path is None:
                return
            yield path


class Resource:
    """A file contained within a bundle.

    Args:
        bundle: The resource's enclosing bundle
        path: The path of the resource within the bundle
    """

    def __init__(self, bundle: "Bundle", path: str):
        self.bundle = bundle
        self.path = path
        self.directory, self.name, self.product, self.extension = (
            split_resource(path)
        )

    def open(self) -> IO[bytes]:
        """Open the resource for reading in binary mode."""
        return self.bundle.storage.open(self.path)

    def get_bytes(self) -> bytes:
        return self.bundle.storage.get_bytes(self.path)

    @classmethod
    def foreach(
        cls,
        bundle: "Bundle",
        name: "str | re.Pattern[str] | None" = None,
        extension: str | None = None,
        subdirectory: str | None = None,
        localization: str | None = None,
        preferred_languages: list[str] | None = None,
        product: str | None = None,
    ) -> Iterator["Resource"]:
        """Lazily enumerate the resources of a bundle matching the criteria.

        Each call starts a new search. Candidates are checked by extension,
        then name, then product, and a resource already yielded from a
        higher priority directory is skipped.

        When a product is requested, a resource without product matches if
        the variant for that product does not exist.

        Args:
            bundle: The bundle that contains the resources
            name: The name to match, a compiled pattern, or None to match
                any name
            extension: The extension to match or None to match any extension
            subdirectory: The bundle subdirectory to search
            localization: A localization to restrict the search to
            preferred_languages: The user's preferred languages
            product: The product to match (e.g. "ipad")
        """
        enumerator = ResourceEnumerator(
            bundle, subdirectory, localization, preferred_languages
        )
        predicate = Predicate(name, extension, product)
        for path in enumerator:
            resource = cls(bundle, path)
            if resource._match(predicate):
                yield resource

    def _match(self, predicate: Predicate) -> bool:
        if not predicate.match_extension(self.extension):
            return False
        if not predicate.match_name(self.name):
            return False
        if not self._match_product(predicate.product):
            return False
        return predicate.uniq(self.name, self.extension)

    def _match_product(self, product: str) -> bool:
        if self.product == product:
            return True
        if self.product:
            return False
        variant = join_resource(
            self.directory, self.name, product, self.extension
        )
        return not self.bundle.storage.exists(variant)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return self.bundle is other.bundle and self.path == other.path

    def __hash__(self) -> int:
        return hash((id(self.bundle), self.path))

    def __repr__(self) -> str:
        return f"Resource({self.path!r})"


# ----------------------------------------------------------------------------
# Bundle


class LayoutVersion(enum.IntEnum):
    """The known arrangements of a bundle's directories."""

    # Info.plist and resources in Resources/
    OLD = 0
    # Info.plist in Contents/, resources in Contents/Resources/
    MODERN = 2
    # iOS bundles: the bundle directory holds Info.plist and resources
    IOS = 3


RESOURCES_DIRECTORIES = {
    LayoutVersion.OLD: "Resources",
    LayoutVersion.MODERN: "Contents/Resources",
    LayoutVersion.IOS: ".",
}

INFO_PLIST_PATHS = {
    LayoutVersion.OLD: "Resources/Info.plist",
    LayoutVersion.MODERN: "Contents/Info.plist",
    LayoutVersion.IOS: "Info.plist",
}


class Bundle:
    """A macOS or iOS bundle.

    The storage is detected from the file argument (see open_storage()):
    a bundle directory, a path to a .zip or .ipa archive, a binary file
    object containing a ZIP archive, or a Storage.

    Bundles are context managers; call close() when not using one. Bundles
    opened from a file object do not close it.

    Args:
        file: The bundle to open

    Example:
        with Bundle.open("Example.app") as bundle:
            icon = bundle.find_resource("AppIcon", extension="icns")
    """

    def __init__(self, file: object):
        self.storage = open_storage(file)
        self.log = logging.getLogger(self.__class__.__name__)
        self._layout_version: LayoutVersion | None = None
        self._info: dict[str, object] | None = None
        self._localizations: list[str] | None = None

    @classmethod
    def open(cls, file: object) -> "Bundle":
        """Open a bundle. Synonym for Bundle(file)."""
        return cls(file)

    def close(self) -> None:
        """Close the bundle and its underlying storage."""
        self.storage.close()

    def __enter__(self) -> "Bundle":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def layout_version(self) -> LayoutVersion:
        if self._layout_version is None:
            self._layout_version = self._detect_layout_version()
            self.log.debug("Detected layout %s", self._layout_version.name)
        return self._layout_version

    def _detect_layout_version(self) -> LayoutVersion:
        if self.storage.is_dir("Contents"):
            return LayoutVersion.MODERN
        if self.storage.is_dir("Resources"):
            return LayoutVersion.OLD
        return LayoutVersion.IOS

    @property
    def resources_directory(self) -> str:
        """Path of the directory containing the bundle's resources.

        For iOS bundles, where the bundle is the resources directory, this
        is a single dot.
        """
        return RESOURCES_DIRECTORIES[self.layout_version]

    @property
    def info_plist_path(self) -> str:
        return INFO_PLIST_PATHS[self.layout_version]

    @property
    def info(self) -> dict[str, object]:
        """The bundle's information property list."""
        if self._info is None:
            self._info = self.load_plist(self.info_plist_path)
        return self._info

    def load_plist(self, path: str) -> dict[str, object]:
        """Decode a property list file of the bundle.

        Raises:
            NotFoundError: If the file does not exist
            CFBundleError: If the file is not a dictionary property list
        """
        try:
            value = plistlib.loads(self.storage.get_bytes(path))
        except plistlib.InvalidFileException as e:
            raise CFBundleError(f"Invalid property list {path}: {e}") from e
        if not isinstance(value, dict):
            raise CFBundleError(f"Property list {path} is not a dictionary")
        return value

    def _info_string(self, key: str) -> str | None:
        value = self.info.get(key)
        return None if value is None else str(value)

    @property
    def identifier(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_IDENTIFIER)

    @property
    def build_version(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_VERSION)

    @property
    def release_version(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_SHORT_VERSION_STRING)

    @property
    def package_type(self) -> str | None:
        """The bundle's four-letter OS Type code (APPL, FMWK, BNDL)."""
        return self._info_string(INFO_KEY_BUNDLE_PACKAGE_TYPE)

    @property
    def name(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_NAME)

    @property
    def display_name(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_DISPLAY_NAME)

    @property
    def development_localization(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_DEVELOPMENT_REGION)

    @property
    def executable_name(self) -> str | None:
        return self._info_string(INFO_KEY_BUNDLE_EXECUTABLE)

    @property
    def executable_path(self) -> str | None:
        """Path of the bundle's executable, relative to the bundle."""
        name = self.executable_name
        if name is None:
            return None
        root = "Contents" if self.layout_version is LayoutVersion.MODERN else "."
        for path in (join(root, "MacOS", name), join(root, name)):
            if self.storage.is_file(path):
                return path
        return None

    @property
    def localizations(self) -> list[str]:
        """All the localizations contained in the bundle."""
        if self._localizations is None:
            self._localizations = localizations_in(self)
        return self._localizations

    def preferred_localizations(
        self, preferred_languages: list[str]
    ) -> list[str]:
        """Ordered localizations of the bundle for the preferred languages."""
        return preferred_localizations(self.localizations, preferred_languages)

    def find_resource(
        self,
        name: "str | re.Pattern[str] | None",
        extension: str | None = None,
        subdirectory: str | None = None,
        localization: str | None = None,
        preferred_languages: list[str] | None = None,
        product: str | None = None,
    ) -> Resource | None:
        """Return the first resource matching the criteria, or None.

        See Resource.foreach() for the parameters.
        """
        return next(
            Resource.foreach(
                self,
                name,
                extension=extension,
                subdirectory=subdirectory,
                localization=localization,
                preferred_languages=preferred_languages,
                product=product,
            ),
            None,
        )

    def find_resources(
        self,
        name: "str | re.Pattern[str] | None",
        extension: str | None = None,
        subdirectory: str | None = None,
        localization: str | None = None,
        preferred_languages: list[str] | None = None,
        product: str | None = None,
    ) -> list[Resource]:
        """Return all the resources matching the criteria.

        See Resource.foreach() for the parameters.
        """
        return list(
            Resource.foreach(
                self,
                name,
                extension=extension,
                subdirectory=subdirectory,
                localization=localization,
                preferred_languages=preferred_languages,
                product=product,
            )
        )

    def __repr__(self) -> str:
        return f"Bundle({self.storage!r})"


# ----------------------------------------------------------------------------
# Command-line interface


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Add common options to a parser."""
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )


def _add_search_options(parser: argparse.ArgumentParser) -> None:
    """Add localization options to a parser."""
    parser.add_argument(
        "-l",
        "--language",
        action="append",
        help="preferred language, most preferred first (repeatable)",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="path to a configuration file (default: .cfbundle.toml)",
    )


def _cmd_info(args: argparse.Namespace) -> None:
    """Handle 'info' subcommand."""
    with Bundle.open(args.bundle) as bundle:
        rows = [
            ("Identifier", bundle.identifier),
            ("Name", bundle.name),
            ("Display name", bundle.display_name),
            ("Package type", bundle.package_type),
            ("Version", bundle.release_version),
            ("Build", bundle.build_version),
            ("Executable", bundle.executable_path),
            ("Development region", bundle.development_localization),
            ("Localizations", ", ".join(bundle.localizations)),
        ]
        for label, value in rows:
            print(f"{label}: {value or '-'}")


def _cmd_ls(args: argparse.Namespace) -> None:
    """Handle 'ls' subcommand."""
    with Bundle.open(args.bundle) as bundle:
        for path in bundle.storage.iterdir(args.path):
            suffix = SEPARATOR if bundle.storage.is_dir(path) else ""
            print(path + suffix)


def _cmd_localizations(args: argparse.Namespace) -> None:
    """Handle 'localizations' subcommand."""
    config = load_config(Path(args.config) if args.config else None)
    languages = resolve_languages(args.language, config)
    with Bundle.open(args.bundle) as bundle:
        if languages:
            localizations = bundle.preferred_localizations(languages)
        else:
            localizations = bundle.localizations
        for localization in localizations:
            print(localization)


def _cmd_find(args: argparse.Namespace) -> None:
    """Handle 'find' subcommand."""
    log = logging.getLogger("cfbundle")
    config = load_config(Path(args.config) if args.config else None)
    languages = resolve_languages(args.language, config)
    product = resolve_product(args.product, config)
    name = args.name
    if name is not None and args.regex:
        try:
            name = re.compile(name)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid pattern {args.name!r}: {e}"
            ) from e

    with Bundle.open(args.bundle) as bundle:
        resources = Resource.foreach(
            bundle,
            name,
            extension=args.extension,
            subdirectory=args.subdirectory,
            localization=args.localization,
            preferred_languages=languages,
            product=product,
        )
        found = False
        for resource in resources:
            found = True
            print(resource.path)
            if not args.all:
                break
    if not found:
        log.error("No matching resource")
        sys.exit(1)


def _cmd_cat(args: argparse.Namespace) -> None:
    """Handle 'cat' subcommand."""
    with Bundle.open(args.bundle) as bundle:
        data = bundle.storage.get_bytes(args.path)
    sys.stdout.buffer.write(data)
    sys.stdout.flush()


def main(argv: list[str] | None = None) -> None:
    """Command line interface for cfbundle."""
    try:
        parser = argparse.ArgumentParser(
            prog="cfbundle",
            description="Read macOS and iOS bundles and their resources.",
            epilog=(
                "Examples:\n"
                "  cfbundle info MyApp.app\n"
                "  cfbundle find MyApp.ipa Localizable -e strings -l fr\n"
                "  cfbundle cat MyApp.zip Contents/Info.plist\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {__version__}",
        )

        subparsers = parser.add_subparsers(
            title="commands",
            dest="command",
            required=True,
        )

        # --- info subcommand ---
        info_parser = subparsers.add_parser(
            "info",
            help="show the bundle's Info.plist summary",
        )
        info_parser.add_argument("bundle", help="bundle directory or archive")
        _add_common_options(info_parser)
        info_parser.set_defaults(func=_cmd_info)

        # --- ls subcommand ---
        ls_parser = subparsers.add_parser(
            "ls",
            help="list a directory of the bundle",
        )
        ls_parser.add_argument("bundle", help="bundle directory or archive")
        ls_parser.add_argument(
            "path",
            nargs="?",
            default=".",
            help="directory relative to the bundle (default: .)",
        )
        _add_common_options(ls_parser)
        ls_parser.set_defaults(func=_cmd_ls)

        # --- localizations subcommand ---
        loc_parser = subparsers.add_parser(
            "localizations",
            help="list the bundle's localizations",
            description=(
                "List the bundle's localizations, or the ones matching "
                "the preferred languages."
            ),
        )
        loc_parser.add_argument("bundle", help="bundle directory or archive")
        _add_search_options(loc_parser)
        _add_common_options(loc_parser)
        loc_parser.set_defaults(func=_cmd_localizations)

        # --- find subcommand ---
        find_parser = subparsers.add_parser(
            "find",
            help="find resources in the bundle",
            epilog=(
                "Examples:\n"
                "  cfbundle find MyApp.app Test -e strings -l fr-CA\n"
                "  cfbundle find MyApp.ipa AppIcon76x76@2x -e png -p ipad\n"
                "  cfbundle find MyApp.ipa '^AppIcon' --regex --all\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        find_parser.add_argument("bundle", help="bundle directory or archive")
        find_parser.add_argument(
            "name",
            nargs="?",
            help="resource name without product or extension (default: any)",
        )
        find_parser.add_argument(
            "-e",
            "--extension",
            help="resource extension (default: any)",
        )
        find_parser.add_argument(
            "-d",
            "--subdirectory",
            help="subdirectory of the resources directory to search",
        )
        find_parser.add_argument(
            "--localization",
            help="search this localization instead of the preferred ones",
        )
        find_parser.add_argument(
            "-p",
            "--product",
            help="product variant, e.g. ipad or iphone",
        )
        find_parser.add_argument(
            "-r",
            "--regex",
            action="store_true",
            help="treat the name as a regular expression",
        )
        find_parser.add_argument(
            "-a",
            "--all",
            action="store_true",
            help="print all matching resources instead of the first",
        )
        _add_search_options(find_parser)
        _add_common_options(find_parser)
        find_parser.set_defaults(func=_cmd_find)

        # --- cat subcommand ---
        cat_parser = subparsers.add_parser(
            "cat",
            help="write a file of the bundle to stdout",
        )
        cat_parser.add_argument("bundle", help="bundle directory or archive")
        cat_parser.add_argument("path", help="file relative to the bundle")
        _add_common_options(cat_parser)
        cat_parser.set_defaults(func=_cmd_cat)

        args = parser.parse_args(argv)
        _load_dotenv()
        setup_logging(args.verbose, not args.no_color)
        args.func(args)

    except CFBundleError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
