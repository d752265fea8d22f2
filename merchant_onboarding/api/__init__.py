"""FastAPI transport for merchant onboarding."""
