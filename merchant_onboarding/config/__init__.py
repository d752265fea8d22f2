"""Configuration package for merchant onboarding."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
