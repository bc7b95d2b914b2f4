"""drivewatch: relay Google Drive folder changes to chat channels."""

__version__ = "0.1.0"
