from enum import Enum

from stlkit.errors import TooSmallError
from stlkit.formats.binary import expected_size, read_triangle_count
from stlkit.formats.tokenizer import SEPARATOR_RE, Tokenizer
from stlkit.geometry.buffer import BINARY_PREAMBLE_SIZE, MIN_STL_SIZE

SNIFF_SIZE = 1024

class StlFormat(Enum):
    ASCII = 'ascii'
    BINARY = 'binary'


def leading_window(data: bytes) -> bytes:
    # window starts at the first token, however much whitespace precedes it
    start = SEPARATOR_RE.match(data).end()
    return data[start:start + SNIFF_SIZE]

def starts_with_solid(data: bytes) -> bool:
    return Tokenizer(leading_window(data), max_token_length=None).next_token().lower() == b'solid'

def detect_format(data: bytes, size: int | None = None) -> StlFormat:
    """
    Classify a complete STL input as ASCII or binary.

    Binary files have the exact size 84 + 50 * count, where count is the
    little-endian uint32 at offset 80; any input of that size is binary, even
    when its header starts with "solid". Inputs of any other size are ASCII
    when their first token is "solid" and binary otherwise (the binary decoder
    then reports the size mismatch).
    """
    size = len(data) if size is None else size
    if size < MIN_STL_SIZE:
        raise TooSmallError(size, MIN_STL_SIZE)
    if size >= BINARY_PREAMBLE_SIZE and len(data) >= BINARY_PREAMBLE_SIZE:
        if size == expected_size(read_triangle_count(data)):
            return StlFormat.BINARY
    if starts_with_solid(data):
        return StlFormat.ASCII
    if size < BINARY_PREAMBLE_SIZE:
        raise TooSmallError(size, BINARY_PREAMBLE_SIZE)
    return StlFormat.BINARY

def sniff_format(head: bytes) -> StlFormat:
    """
    Classify an input from its leading bytes alone, for when the total size is unknown.

    ASCII requires the token "solid", a name line, and then "facet" or
    "endsolid". This can disagree with `detect_format` on a binary file whose
    header reads like the start of an ASCII solid.
    """
    tokens = Tokenizer(leading_window(head), max_token_length=None)
    if tokens.next_token().lower() != b'solid':
        return StlFormat.BINARY
    tokens.read_line()
    if tokens.next_token().lower() in (b'facet', b'endsolid'):
        return StlFormat.ASCII
    return StlFormat.BINARY
