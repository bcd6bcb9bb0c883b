"""Server context, built once at startup from the YAML configuration file.

A missing configuration file is generated with defaults. A missing site
directory is created, and so is a missing not-found page.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Self

import yaml

from static_host.log import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger()

DEFAULT_NOT_FOUND_FILE = """
<!DOCTYPE html>
<html>
    <head>
        <title>Not found</title>
    </head>
    <body>
        Oops! That page wasn't found on this server.
    </body>
</html>
"""


class ContextError(Exception):
    """Failure building the server context. The cause is chained."""

    what: ClassVar[str] = "Failed to build server context from"

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"{self.what} '{path}'")


class ConfigOpenError(ContextError):
    what = "Failed to open config file"


class ConfigParseError(ContextError):
    what = "Failed to parse config file"


class ConfigCreateError(ContextError):
    what = "Failed to create config file"


class ConfigWriteError(ContextError):
    what = "Failed to write config file"


class SiteDirCreateError(ContextError):
    what = "Failed to create site directory"


class SiteDirCanonicalizeError(ContextError):
    what = "Failed to canonicalize site directory"


class NotFoundFileCreateError(ContextError):
    what = "Failed to create not found file"


class NotFoundFileOpenError(ContextError):
    what = "Failed to open not found file"


@dataclass(frozen=True, slots=True, kw_only=True)
class Config:
    """The contents of the configuration file.

    Relative paths are relative to the working directory.
    """

    """Directory with the files to serve"""
    site: Path = Path("./www")

    """Page served with every 404"""
    not_found_file: Path = Path("./www/not_found.html")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> Self:
        """Builds a config from parsed YAML. Missing keys take their defaults.

        Raises:
            TypeError: if a value is not a string
        """
        known = {f.name for f in fields(cls)}
        for key in data.keys() - known:
            logger.warning("Ignoring unknown config key", key=key)

        values: dict[str, Path] = {}
        for key in known & data.keys():
            value = data[key]
            if not isinstance(value, str):
                msg = f"Config key '{key}' must be a string, got {value!r}"
                raise TypeError(msg)
            values[key] = Path(value)

        return cls(**values)

    def to_mapping(self) -> dict[str, str]:
        """The config as written to the YAML file."""
        return {key: str(value) for key, value in asdict(self).items()}

    def write(self, path: Path) -> None:
        """Writes the config as YAML, creating the file."""
        try:
            handle = path.open("w", encoding="utf-8")
        except OSError as e:
            raise ConfigCreateError(path) from e

        with handle:
            try:
                yaml.safe_dump(self.to_mapping(), handle, sort_keys=False)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigWriteError(path) from e


def load_config(path: Path) -> Config:
    """Reads the config file at path, generating a default one if it is missing."""
    logger.debug("Reading config file", path=str(path))
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError:
        logger.info("No config file found; generating default", path=str(path))
        config = Config()
        config.write(path)
        return config
    except OSError as e:
        raise ConfigOpenError(path) from e
    except yaml.YAMLError as e:
        raise ConfigParseError(path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigParseError(path) from TypeError(
            f"Expected a mapping, got {type(data).__name__}"
        )

    try:
        return Config.from_mapping(data)
    except TypeError as e:
        raise ConfigParseError(path) from e


@dataclass(frozen=True, slots=True, kw_only=True)
class ServerContext:
    """Everything a request needs to know about the server. Never mutated."""

    """Name of the server, sent in the server header"""
    name: str

    """Version of the server, sent in the server header"""
    version: str

    """Canonical directory all served files descend from"""
    site: Path

    """Absolute path of the page served with every 404"""
    not_found_file: Path

    @property
    def server(self) -> str:
        """Value of the server header."""
        return f"{self.name}/{self.version}"

    @classmethod
    def from_config(cls, name: str, version: str, config: Config) -> Self:
        """Prepares the site directory and not-found page described by config.

        Raises:
            ContextError: a subclass naming the step that failed
        """
        site = config.site
        if not site.exists():
            logger.warning(
                "Site directory does not exist; creating it", path=str(site)
            )
            try:
                site.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SiteDirCreateError(site) from e

        try:
            site = site.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise SiteDirCanonicalizeError(site) from e
        if not site.is_dir():
            raise SiteDirCanonicalizeError(site) from NotADirectoryError(str(site))

        not_found_file = config.not_found_file
        if not not_found_file.exists():
            logger.warning(
                "Not found file does not exist; creating it",
                path=str(not_found_file),
            )
            try:
                not_found_file.write_text(DEFAULT_NOT_FOUND_FILE, encoding="utf-8")
            except OSError as e:
                raise NotFoundFileCreateError(not_found_file) from e

        # The not-found page must be openable before anything is served.
        try:
            with not_found_file.open("rb"):
                pass
        except OSError as e:
            raise NotFoundFileOpenError(not_found_file) from e

        return cls(
            name=name,
            version=version,
            site=site,
            not_found_file=not_found_file.absolute(),
        )

    @classmethod
    def from_config_file(cls, name: str, version: str, path: str | Path) -> Self:
        """Loads (or generates) the config file and builds the context from it."""
        return cls.from_config(name, version, load_config(Path(path)))
