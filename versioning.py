"""Application name and version, shared by the runtime and packaging."""
from __future__ import annotations


APP_NAME: str = "RadarImageReceiver"
APP_EXE_NAME: str = "radar-receiver"
APP_VERSION: str = "0.3.0"
APP_DESCRIPTION: str = "Shows the latest image from a poller or push controller with a radar reveal."


__all__ = [
    "APP_NAME",
    "APP_EXE_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
]
