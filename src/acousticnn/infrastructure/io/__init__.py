from ._token_stream import (
    BINARY_HEADER,
    TokenReader,
    TokenWriter,
    format_float,
    open_input,
    open_output,
)
from ._config_pairs import normalize_key, parse_config_pairs, parse_float, parse_int

__all__ = [
    "BINARY_HEADER",
    TokenReader.__name__,
    TokenWriter.__name__,
    format_float.__name__,
    open_input.__name__,
    open_output.__name__,
    normalize_key.__name__,
    parse_config_pairs.__name__,
    parse_float.__name__,
    parse_int.__name__,
]
