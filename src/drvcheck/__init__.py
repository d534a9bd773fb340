import importlib.metadata

from drvcheck.config import Configuration

# Global configuration instance, populated at startup by main()
# and used as a singleton afterwards.
app_config = Configuration()  # Has default values out of the box

# Current software version, imported from pyproject metadata
__version__ = importlib.metadata.version("drvcheck")

__all__ = ["__version__", "app_config", "Configuration"]
