"""WazirX private REST client with a rate-limit aware dispatch engine."""

__version__ = "0.3.0"
