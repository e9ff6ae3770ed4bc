"""mtrip - UDP bandwidth measurement (meter / reflector)"""

__version__ = "0.1.0"
