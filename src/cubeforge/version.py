"""Version information for :mod:`cubeforge`."""

__all__ = ["VERSION"]

VERSION = "0.3.0"
