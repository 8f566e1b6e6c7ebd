"""paygate - Square payment gateway for tournament registrations."""

__version__ = "0.1.0"
