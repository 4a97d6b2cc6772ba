# src/errors.py
"""
Exception types raised by the schedule and lumping routines.

All of them derive from ValueError so callers that already guard the
pipeline with `except ValueError` keep working.
"""


class InvalidParameters(ValueError):
    """Schedule parameter set has missing, unknown or non-numeric entries."""


class InvalidInput(ValueError):
    """Ages are malformed or outside the schedule's domain."""


class InvalidArgument(ValueError):
    """Unrecognised lump token, malformed flow table or incompatible options."""


class DenseConversionUnsupported(InvalidArgument):
    """A matrix result was requested where no unambiguous matrix shape exists."""
