import copy
import errno
import json
import logging
import os
import tomllib
from collections.abc import Callable
from typing import Any, BinaryIO

import yaml

ENV_PREFIX = "DRVCHECK_OPTIONS_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_flag(value: Any) -> bool:
    return isinstance(value, bool)


def _is_seconds(value: Any) -> bool:
    # bool is an int subclass, "timeout: true" is still a mistake
    return (
        isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    )


def _is_log_level(value: Any) -> bool:
    return isinstance(value, str) and value.upper() in LOG_LEVELS


def _is_optional_path(value: Any) -> bool:
    return value is None or (isinstance(value, str) and bool(value.strip()))


def _is_filename(value: Any) -> bool:
    return (
        isinstance(value, str)
        and bool(value.strip())
        and "/" not in value
        and "\\" not in value
    )


# Per option: (description, validator, expected value in words)
OPTIONS: dict[str, tuple[str, Callable[[Any], bool], str]] = {
    "debug": (
        "Log to the console instead of the log file",
        _is_flag,
        "true or false",
    ),
    "log_level": (
        "Log level for drvcheck messages",
        _is_log_level,
        f"one of {', '.join(LOG_LEVELS)}",
    ),
    "log_file": (
        "Write logs to this file, no logging if unset",
        _is_optional_path,
        "a file path",
    ),
    "timeout": (
        "Timeout for the driver lookup request, in seconds",
        _is_seconds,
        "a positive number",
    ),
    "download_timeout": (
        "Timeout for the installer download, in seconds",
        _is_seconds,
        "a positive number",
    ),
    "auto_install": (
        "Offer the (a)utomatic silent install choice",
        _is_flag,
        "true or false",
    ),
    "smi_path": (
        "Path to nvidia-smi, autodetected if unset",
        _is_optional_path,
        "a file path",
    ),
    "download_dir": (
        "Where to store the installer, temporary directory if unset",
        _is_optional_path,
        "a directory path",
    ),
    "installer_filename": (
        "File name of the downloaded installer",
        _is_filename,
        "a file name without directories",
    ),
    "pause_on_error": (
        "Wait for Enter before exiting on failure",
        _is_flag,
        "true or false",
    ),
}


def describe(option: str) -> str:
    """Return the human readable description of an option."""
    return OPTIONS[option][0]


class Configuration(dict):
    """
    Hold configuration values for the application.
    Extends a native dict to store the options section of the
    configuration file.

    Option values are checked against `OPTIONS` as they are merged in,
    so anything reaching the rest of the program has the expected type.
    """

    DEFAULTS: dict = {
        "options": {
            "debug": False,
            "log_level": "WARNING",
            "log_file": None,
            "timeout": 10,
            "download_timeout": 120,
            "auto_install": False,
            "smi_path": None,
            "download_dir": None,
            "installer_filename": "nvidiadrv.exe",
            "pause_on_error": False,
        },
    }

    def __init__(self) -> None:
        """
        Initialize the Configuration object with default values.
        """
        dict.__init__(self, copy.deepcopy(self.DEFAULTS))
        self.logger = logging.getLogger(__name__)

    def from_toml(self, filepath: str, silent: bool = False) -> bool:
        """
        Populate the configuration structure from a toml file

        This method is a convenience wrapper used for shorthand
        for the from_file method, with tomllib.load() as the loader.

        see `from_file()`for details.
        """
        return self.from_file(filepath, tomllib.load, silent=silent)

    def from_yaml(self, filepath: str, silent: bool = False) -> bool:
        """
        Populate the configuration structure from a yaml file

        This method is a convenience wrapper used for shorthand
        for the from_file method, with yaml.safe_load() as the loader.

        see `from_file()`for details.
        """
        return self.from_file(filepath, yaml.safe_load, silent=silent)

    def from_json(self, filepath: str, silent: bool = False) -> bool:
        """
        Populate the configuration structure from a json file

        This method is a convenience wrapper used for shorthand
        for the from_file method, with json.load() as the loader.

        see `from_file()`for details.
        """
        return self.from_file(filepath, json.load, silent=silent)

    def from_file(
        self, filepath: str, loader: Callable[[BinaryIO], dict], silent: bool = False
    ) -> bool:
        """
        Populate the configuration structure from a file, with a
        specified loader function callable.

        The loader must be a reference to a callable that takes a
        file handle and returns a mapping of the data contained within.

        For instance, tomllib.load() is a valid loader for toml files

        An empty file is valid and leaves the defaults untouched.
        """
        try:
            with open(filepath, "rb") as f:
                data = loader(f)
        except IOError as e:
            if silent and e.errno in (errno.ENOENT, errno.EISDIR):
                return False

            e.strerror = f"Unable to load config file {filepath}: {e.strerror}"

            raise

        if data is None:
            return True

        return self.update_from_mapping(data)

    def from_env(self, parser: Callable[[str], Any] = yaml.safe_load) -> bool:
        """
        Populate the options section from environment variables.

        Variables named DRVCHECK_OPTIONS_<KEY> set the option <key>.
        Values go through the parser callable, which by default is
        yaml.safe_load(), so "true" and "10" become a bool and an int.

        :param parser: Callable converting the raw string value
        :return: True once the environment has been processed
        """
        options: dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            option = key.removeprefix(ENV_PREFIX).lower()
            try:
                options[option] = parser(value)
            except (yaml.YAMLError, ValueError):
                # Not a scalar the parser understands, take it verbatim
                options[option] = value
            self.logger.debug("Option %s set from environment", option)

        if options:
            self.update_from_mapping({"options": options})

        return True

    def update_from_mapping(self, *mapping: dict, **kwargs: dict) -> bool:
        """
        Populate values like the native dict.update() method, but
        only if the key is a valid root configuration key.

        Unknown keys in the options section are ignored with a
        warning, known ones are validated and merged.
        """
        mappings = []

        if len(mapping) == 1:
            if hasattr(mapping[0], "items"):
                mappings.append(mapping[0].items())
            else:
                mappings.append(mapping[0])
        elif len(mapping) > 1:
            raise TypeError(
                f"Config mapping expected at most 1 positional argument, "
                f"got {len(mapping)}"
            )

        mappings.append(kwargs.items())

        # Parse and filter mappings
        for mapping in mappings:
            for k, v in mapping:
                if k not in self.DEFAULTS:
                    self.logger.warning(
                        "Configuration key %s is not a valid root key, ignoring", k
                    )
                    continue

                if v is None:
                    # "options:" with nothing under it
                    continue

                if not isinstance(v, dict):
                    self.logger.warning(
                        "Configuration section %s must be a mapping, ignoring", k
                    )
                    continue

                self.deep_update(self[k], self._filter_options(v))

        return True

    def _filter_options(self, options: dict) -> dict:
        """
        Drop keys that are not known options, and values of the wrong
        type, with a warning. The current value is kept for those.
        """
        valid: dict = {}

        for k, v in options.items():
            if k not in OPTIONS:
                self.logger.warning(
                    "Configuration key %s is not a valid options key, ignoring", k
                )
                continue

            _, check, expected = OPTIONS[k]
            if not check(v):
                self.logger.warning(
                    "Configuration option %s must be %s, got %r, ignoring",
                    k,
                    expected,
                    v,
                )
                continue

            if k == "log_level":
                v = v.upper()

            valid[k] = v

        return valid

    def deep_update(self, d: dict, u: dict) -> dict:
        """
        Recursively update a dictionary with another dictionary.
        Ensures nested dicts are updated rather than replaced.
        """
        for k, v in u.items():
            if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                self.deep_update(d[k], v)
            else:
                d[k] = v
        return d
