"""Core configuration for the Prescription Safety Engine."""

from prescription_safety.core.config import Settings, settings

__all__ = ["Settings", "settings"]
