"""Command line client for the Capturoo lead capture platform."""

__version__ = "0.4.0"
