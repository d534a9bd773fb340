import json
import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Callable

import yaml

from drvcheck import app_config, cli, context
from drvcheck.config import Configuration

logger = logging.getLogger(__name__)

# List of configuration file paths to check, in order of precedence
# The search stops at first match, so ordering matters.
CONFPATHS: list[Path] = [
    Path.home() / ".config" / "drvcheck" / "config.yaml",
    Path.home() / ".config" / "drvcheck" / "config.toml",
    Path.home() / ".config" / "drvcheck" / "config.json",
    Path.home() / ".drvcheck.yaml",
    Path.home() / ".drvcheck.toml",
    Path.home() / ".drvcheck.json",
    Path.cwd() / "config.yaml",
    Path.cwd() / "config.toml",
    Path.cwd() / "config.json",
]

LOADERS: dict[str, Callable] = {
    "yaml": yaml.safe_load,
    "yml": yaml.safe_load,
    "toml": tomllib.load,
    "json": json.load,
}


def setup_logging(log_level: str, log_file: str | None = None) -> None:
    """
    Set up logging configuration.
    This function initializes the logging system with a specified log level
    and optional log file. If no log file is specified, logs will be printed
    to the console.

    :param log_file: Optional log file path to write logs to.
    :param log_level: The logging level to set.
    """
    handler: logging.Handler

    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)

    logging.basicConfig(
        level=logging.WARN,  # Default to WARN for root logger, avoid library noise
        handlers=[handler],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logging.getLogger("drvcheck").setLevel(log_level)
    logging.getLogger(__name__).info("Logging initialized with level: %s", log_level)


def load_first_config(config: Configuration) -> bool:
    """
    Load the first configuration file found in the list of paths.
    Brutally exits with non-zero status in case of issues beyond
    ENOENT and EISDIR.

    If DRVCHECK_CONFIG_FILE is set, only that file is considered.

    :param config: The configuration object to populate.

    :return: True if a configuration file was loaded, False otherwise.
    """
    env_file = os.environ.get("DRVCHECK_CONFIG_FILE")
    confpaths = [Path(env_file)] if env_file else CONFPATHS

    for confpath in confpaths:
        logger.debug("Trying config file at %s", confpath)
        if not confpath.exists():
            continue

        logger.debug("Loading config file from %s", confpath)
        ext = confpath.suffix[1:].lower()
        loader = LOADERS.get(ext)

        if not loader:
            logger.error("No working loaders for extension: %s, skipping.", ext)
            continue

        try:
            if config.from_file(filepath=str(confpath), loader=loader, silent=True):
                context.confpath = str(confpath)
                logger.info("Loaded config file from %s", confpath)
                return True
            else:
                logger.warning("Failed to load config file from %s", confpath)
        except Exception as e:
            # Abort brutally in case of non-standard load failure
            # Exception will contain the actual error message
            logger.error("Startup error: %s", e)
            sys.stderr.write(f"Unable to load configuration: {e}\n")
            sys.exit(1)

    return False


def main() -> None:
    """
    Program Entry Point
    """
    # Load the first configuration file found
    loaded = load_first_config(app_config)

    # Environment overrides whatever the file said
    app_config.from_env()

    # initialize logging and setup handlers depending on config
    log_file: str | None = app_config["options"].get("log_file")
    debug_mode: bool = app_config["options"].get("debug")

    if debug_mode:
        setup_logging(app_config["options"]["log_level"])
        logger.warning("Debug mode enabled! Logs may flood console!")
    elif log_file:
        setup_logging(app_config["options"]["log_level"], log_file)
    else:
        # Errors are already reported on the console, keep logs quiet
        logging.getLogger("drvcheck").addHandler(logging.NullHandler())

    if loaded:
        logger.info("Configuration loaded from: %s", context.confpath)
    else:
        logger.info("No configuration file found. Using defaults.")

    # Launch CLI application
    cli.app()


if __name__ == "__main__":
    main()
