"""Weighing and dimensioning station: serial scale and sensor controller, clipboard output and a web console."""

__version__ = "0.1.0"