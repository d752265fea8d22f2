"""Merchant onboarding state machine and tariff engine."""

__version__ = "0.1.0"
