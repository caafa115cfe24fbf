"""
Options accepted when opening a DBF file.
"""

import codecs
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from dbf_errors import EncodingError


DBF_DEFAULT_ENCODING = 'latin1'
DBF_READ_MODES = ('strict', 'loose')

Encoding = Union[str, Dict[str, str]]


@dataclass
class DBFOpenOptions:
    """Resolved options for a DBF read session."""
    encoding: Encoding = DBF_DEFAULT_ENCODING  # name, or {'default': name, FIELD: name}
    read_mode: str = 'strict'  # 'strict' or 'loose'
    include_deleted_records: bool = False

    @property
    def loose(self) -> bool:
        return self.read_mode == 'loose'


def _check_encoding(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise EncodingError(f"Unsupported character encoding {name!r}")
    try:
        codecs.lookup(name)
    except LookupError:
        raise EncodingError(f"Unsupported character encoding '{name}'") from None
    return name


def normalise_open_options(options: Optional[Union[DBFOpenOptions, Mapping[str, Any]]] = None) -> DBFOpenOptions:
    """
    Build a validated DBFOpenOptions from None, a mapping or an existing instance.

    Args:
        options: Caller-supplied options

    Returns:
        A new DBFOpenOptions with every encoding checked against the codec registry
    """
    if options is None:
        options = {}
    elif isinstance(options, DBFOpenOptions):
        options = {
            'encoding': options.encoding,
            'read_mode': options.read_mode,
            'include_deleted_records': options.include_deleted_records,
        }

    unknown = set(options) - {'encoding', 'read_mode', 'include_deleted_records'}
    if unknown:
        raise ValueError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    encoding = options.get('encoding', DBF_DEFAULT_ENCODING)
    if isinstance(encoding, Mapping):
        resolved = {key: _check_encoding(value) for key, value in encoding.items()}
        resolved.setdefault('default', DBF_DEFAULT_ENCODING)
        encoding = resolved
    else:
        encoding = _check_encoding(encoding)

    read_mode = options.get('read_mode', 'strict')
    if read_mode not in DBF_READ_MODES:
        raise ValueError(f"Invalid read mode: {read_mode!r}. Expected 'strict' or 'loose'.")

    return DBFOpenOptions(
        encoding=encoding,
        read_mode=read_mode,
        include_deleted_records=bool(options.get('include_deleted_records', False)),
    )


def get_field_encoding(encoding: Encoding, field_name: Optional[str] = None) -> str:
    """Return the encoding for a field, falling back to the default entry."""
    if isinstance(encoding, str):
        return encoding
    if field_name is not None and encoding.get(field_name):
        return encoding[field_name]
    return encoding['default']
