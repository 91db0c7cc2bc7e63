"""Exception types raised by the optimisation pipeline."""

from __future__ import annotations


class SlimpageError(Exception):
    """Base class for errors raised by slimpage."""


class SrcsetError(SlimpageError, ValueError):
    """A srcset attribute value could not be parsed or rendered."""


class InvalidDescriptor(SrcsetError):
    """A srcset candidate carries a malformed or non-positive descriptor."""


class ConflictingDescriptors(SrcsetError):
    """A srcset candidate carries both a width and a density descriptor."""


class MissingUrl(SrcsetError):
    """A srcset candidate has no URL."""


class AmbiguousSelector(SlimpageError):
    """A selector could not be evaluated against the document."""


class LocalizationError(SlimpageError):
    """A captured resource could not be written to the output directory."""


class UnresolvableExtension(LocalizationError):
    """Neither the content type nor the URL yields a file extension."""


class ResourceWriteFailure(LocalizationError):
    """The resource body could not be fetched or written to disk."""


class UnknownContentLength(SlimpageError):
    """A response did not declare its transfer size."""
