"""
Exceptions raised while decoding DBF tables and memo files.
"""


class DBFError(Exception):
    """Base class for all DBF decoding errors."""


class FormatError(DBFError, ValueError):
    """The table header or field descriptors are malformed."""


class FieldTypeError(FormatError, TypeError):
    """A field type (or its size) is not supported."""


class MemoError(DBFError, ValueError):
    """A memo value could not be read from the memo file."""


class EncodingError(DBFError, LookupError):
    """The requested character encoding is not available."""
