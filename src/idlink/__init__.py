"""idlink - external identity sign-in gateway."""

__version__ = "0.1.0"
