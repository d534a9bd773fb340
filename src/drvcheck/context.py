"""
Context module for drvcheck

Runtime state shared across the application that does not belong
in the configuration itself.
"""

# Path of the configuration file loaded at startup, if any
confpath: str | None = None
