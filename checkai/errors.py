"""Error taxonomy for the fact-checking core.

Only ValidationError ever reaches a caller. The others are raised inside
backend clients and parsers and absorbed at component boundaries, where
the component falls back to its deterministic substitute.
"""


class CheckAIError(Exception):
    """Base class for all core errors."""


class ValidationError(CheckAIError, ValueError):
    """Caller input does not match the expected shape."""


class UpstreamUnavailable(CheckAIError):
    """A model, search or NLI backend is unreachable, unauthorized or unconfigured."""


class ParseError(CheckAIError):
    """A backend replied with non-JSON or schema-violating content."""
