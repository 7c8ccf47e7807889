import logging
import numpy as np
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional, TextIO

from stlkit.errors import MalformedAsciiError
from stlkit.formats.tokenizer import Tokenizer, MAX_TOKEN_LENGTH
from stlkit.geometry.buffer import GeometryBuffer, FLOATS_PER_TRIANGLE, AXES_PER_VERTEX

logger = logging.getLogger(__name__)

EOF_TOKEN = '<EOF>'

class ParseState(Enum):
    SOLID = auto()
    FACET = auto()
    FACET_NORMAL = auto()
    NORMAL_X = auto()
    NORMAL_Y = auto()
    NORMAL_Z = auto()
    OUTER = auto()
    OUTER_LOOP = auto()
    VERTEX = auto()
    VERTEX_X = auto()
    VERTEX_Y = auto()
    VERTEX_Z = auto()
    END_LOOP = auto()
    END_FACET = auto()
    END_SOLID = auto()
    DONE = auto()
    ERROR = auto()

# Actions returned by `transition`

@dataclass(frozen=True)
class Continue:
    pass

@dataclass(frozen=True)
class Reconsume:
    pass

@dataclass(frozen=True)
class ReadName:
    pass

@dataclass(frozen=True)
class Emit:
    target: str  # 'normal' or 'vertex'
    value: float

@dataclass(frozen=True)
class Fail:
    expected: str
    actual: str

Action = Continue | Reconsume | ReadName | Emit | Fail

# Transition tables

KEYWORD_STATES: dict[ParseState, tuple[bytes, ParseState]] = {
    ParseState.SOLID: (b'solid', ParseState.FACET),
    ParseState.FACET: (b'facet', ParseState.FACET_NORMAL),
    ParseState.FACET_NORMAL: (b'normal', ParseState.NORMAL_X),
    ParseState.OUTER: (b'outer', ParseState.OUTER_LOOP),
    ParseState.OUTER_LOOP: (b'loop', ParseState.VERTEX),
    ParseState.VERTEX: (b'vertex', ParseState.VERTEX_X),
    ParseState.END_LOOP: (b'endloop', ParseState.END_FACET),
    ParseState.END_FACET: (b'endfacet', ParseState.FACET),
    ParseState.END_SOLID: (b'endsolid', ParseState.DONE),
}

# States that hand the token to another state without consuming it
LOOKAHEAD_STATES: dict[ParseState, tuple[bytes, ParseState]] = {
    ParseState.FACET: (b'endsolid', ParseState.END_SOLID),
    ParseState.VERTEX: (b'endloop', ParseState.END_LOOP),
}

NUMBER_STATES: dict[ParseState, tuple[str, str, ParseState]] = {
    ParseState.NORMAL_X: ('normal', 'normal x', ParseState.NORMAL_Y),
    ParseState.NORMAL_Y: ('normal', 'normal y', ParseState.NORMAL_Z),
    ParseState.NORMAL_Z: ('normal', 'normal z', ParseState.OUTER),
    ParseState.VERTEX_X: ('vertex', 'vertex x', ParseState.VERTEX_Y),
    ParseState.VERTEX_Y: ('vertex', 'vertex y', ParseState.VERTEX_Z),
    ParseState.VERTEX_Z: ('vertex', 'vertex z', ParseState.VERTEX),
}

NAME_STATES = (ParseState.SOLID, ParseState.END_SOLID)


def describe(token: bytes) -> str:
    return token.decode('utf-8', 'replace') if token else EOF_TOKEN

def parse_number(token: bytes) -> Optional[float]:
    if b'_' in token:  # float() accepts digit separators, STL does not
        return None
    try:
        return float(token)
    except ValueError:
        return None

def transition(state: ParseState, token: bytes) -> tuple[ParseState, Action]:
    if state is ParseState.DONE:
        return state, Continue()
    elif state is ParseState.ERROR:
        return state, Fail('nothing after a parse error', describe(token))

    if state in NUMBER_STATES:
        target, component, next_state = NUMBER_STATES[state]
        value = parse_number(token)
        if value is None:
            return ParseState.ERROR, Fail(component, describe(token))
        return next_state, Emit(target, value)

    keyword = token.lower()
    if state in LOOKAHEAD_STATES:
        lookahead, next_state = LOOKAHEAD_STATES[state]
        if keyword == lookahead:
            return next_state, Reconsume()

    expected, next_state = KEYWORD_STATES[state]
    if keyword != expected:
        return ParseState.ERROR, Fail(expected.decode(), describe(token))
    if state in NAME_STATES:
        return next_state, ReadName()
    return next_state, Continue()


# ASCII reader

def parse_ascii(data: bytes, max_token_length: Optional[int] = MAX_TOKEN_LENGTH) -> GeometryBuffer:
    """
    Parse ASCII STL text into a new GeometryBuffer.

    Raises MalformedAsciiError at the first grammar violation, naming the
    expected keyword (or numeric component) and the token actually found.
    """
    tokens = Tokenizer(data, max_token_length)
    normals: list[float] = []
    vertices: list[float] = []
    state = ParseState.SOLID
    token = tokens.next_token()

    while True:
        state, action = transition(state, token)
        match action:
            case Reconsume():
                continue
            case ReadName():
                name = tokens.read_line()
                logger.debug("%s name: %r", 'end of solid' if state is ParseState.DONE else 'solid', name.decode('utf-8', 'replace'))
            case Emit(target='normal', value=value):
                normals.append(value)
            case Emit(value=value):
                vertices.append(value)
            case Fail(expected=expected, actual=actual):
                logger.warning("Invalid ASCII STL on line %d: expected [%s] but got [%s]", tokens.line_number, expected, actual)
                raise MalformedAsciiError(expected, actual, tokens.line_number)

        if state is ParseState.END_FACET and len(vertices) != FLOATS_PER_TRIANGLE * (len(normals) // AXES_PER_VERTEX):
            facet_vertices = (len(vertices) - FLOATS_PER_TRIANGLE * (len(normals) // AXES_PER_VERTEX - 1)) // AXES_PER_VERTEX
            logger.warning("Invalid ASCII STL on line %d: facet has %d vertices", tokens.line_number, facet_vertices)
            raise MalformedAsciiError('3 vertices per facet', f'{facet_vertices} vertices', tokens.line_number)
        if state is ParseState.DONE:
            break
        token = tokens.next_token()

    return GeometryBuffer(vertices=np.array(vertices, dtype=np.float32),
                          normals=np.array(normals, dtype=np.float32),
                          triangle_count=len(vertices) // FLOATS_PER_TRIANGLE)


# ASCII writer

def format_float(value: float) -> str:
    return np.format_float_scientific(np.float32(value), unique=True, trim='0')

def format_triple(values: np.ndarray) -> str:
    return ' '.join(format_float(v) for v in values)

def iter_ascii_lines(geometry: GeometryBuffer, name: str):
    geometry.validate()
    name = ' '.join(name.split())
    normals = geometry.facet_normals() if len(geometry.normals) else np.zeros((geometry.triangle_count, 3), dtype=np.float32)
    if len(geometry.colors):
        logger.debug("ASCII STL cannot store colors, dropping %d color values", len(geometry.colors))

    yield f"solid {name}".rstrip()
    for normal, triangle in zip(normals, geometry.triangles()):
        yield f"facet normal {format_triple(normal)}"
        yield "  outer loop"
        for vertex in triangle:
            yield f"    vertex {format_triple(vertex)}"
        yield "  endloop"
        yield "endfacet"
    yield f"endsolid {name}".rstrip()

def format_ascii(geometry: GeometryBuffer, name: str = '') -> str:
    return '\n'.join(iter_ascii_lines(geometry, name)) + '\n'

def write_ascii(stream: TextIO, geometry: GeometryBuffer, name: str = '') -> None:
    stream.write(format_ascii(geometry, name))
