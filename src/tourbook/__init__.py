"""tourbook: booking, validation and offline delivery for guided tours."""

__version__ = "0.1.0"
