"""Legacy sendmail relay: authorizes, normalizes and forwards email requests."""

__version__ = "0.1.0"
