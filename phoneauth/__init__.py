"""Phone number OTP login and session token service."""

__version__ = "0.1.0"
