"""External integrations for merchant onboarding."""
from .reporter import ReporterClient

__all__ = ["ReporterClient"]
