import struct
import logging
import numpy as np

from stlkit.errors import TooSmallError, MalformedBinaryError
from stlkit.geometry.buffer import GeometryBuffer, HEADER_SIZE, BINARY_PREAMBLE_SIZE, TRIANGLE_RECORD_SIZE

logger = logging.getLogger(__name__)

# Binary STL layout (little-endian, no padding):
#
#   UINT8[80]    - Header                 - 80 bytes
#   UINT32       - Number of triangles    -  4 bytes
#   foreach triangle                      - 50 bytes
#       REAL32[3] - Normal vector         - 12 bytes
#       REAL32[3] - Vertex 1              - 12 bytes
#       REAL32[3] - Vertex 2              - 12 bytes
#       REAL32[3] - Vertex 3              - 12 bytes
#       UINT16    - Attribute byte count  -  2 bytes

RECORD_DTYPE = np.dtype([
    ('normal', '<f4', (3,)),
    ('vectors', '<f4', (3, 3)),
    ('attr', '<u2'),
])

COUNT_FORMAT = '<I'

# Color attribute word: bit 0 flags a valid color, then 4 bits each of blue, green and red
COLOR_VALID = 0x0001
BLUE_SHIFT = 4
GREEN_SHIFT = 8
RED_SHIFT = 12
CHANNEL_MASK = 0xF
CHANNEL_MAX = 15.0


def expected_size(triangle_count: int) -> int:
    return BINARY_PREAMBLE_SIZE + TRIANGLE_RECORD_SIZE * triangle_count

def read_triangle_count(data: bytes) -> int:
    return struct.unpack_from(COUNT_FORMAT, data, HEADER_SIZE)[0]


# Colors

def decode_colors(attributes: np.ndarray) -> np.ndarray:
    valid = (attributes & COLOR_VALID).astype(bool)
    if not valid.any():
        return np.zeros(0, dtype=np.float32)
    colors = np.stack([
        (attributes >> RED_SHIFT) & CHANNEL_MASK,
        (attributes >> GREEN_SHIFT) & CHANNEL_MASK,
        (attributes >> BLUE_SHIFT) & CHANNEL_MASK,
    ], axis=1).astype(np.float32) / np.float32(CHANNEL_MAX)
    colors[~valid] = np.nan
    return colors.reshape(-1)

def encode_colors(colors: np.ndarray, triangle_count: int) -> np.ndarray:
    attributes = np.zeros(triangle_count, dtype=np.uint16)
    if len(colors) == 0:
        return attributes
    rgb = np.asarray(colors, dtype=np.float32).reshape(-1, 3)
    valid = ~np.isnan(rgb).any(axis=1)
    channels = np.clip(np.round(np.nan_to_num(rgb) * CHANNEL_MAX), 0, CHANNEL_MAX).astype(np.uint16)
    attributes[valid] = ((channels[valid, 0] << RED_SHIFT) |
                         (channels[valid, 1] << GREEN_SHIFT) |
                         (channels[valid, 2] << BLUE_SHIFT) |
                         COLOR_VALID)
    return attributes


# Decode / encode

def decode_binary(data: bytes) -> GeometryBuffer:
    if len(data) < BINARY_PREAMBLE_SIZE:
        raise TooSmallError(len(data), BINARY_PREAMBLE_SIZE)

    header = bytes(data[:HEADER_SIZE])
    num_triangles = read_triangle_count(data)
    if len(data) != expected_size(num_triangles):
        raise MalformedBinaryError(num_triangles, expected_size(num_triangles), len(data))

    if num_triangles == 0:
        records = np.zeros(0, dtype=RECORD_DTYPE)
    else:
        records = np.frombuffer(data, dtype=RECORD_DTYPE, count=num_triangles, offset=BINARY_PREAMBLE_SIZE)
    colors = decode_colors(records['attr'])
    logger.debug("Decoded %d triangles, %d with color", num_triangles, int(np.sum(~np.isnan(colors))) // 3)
    return GeometryBuffer(vertices=records['vectors'].reshape(-1).astype(np.float32),
                          normals=records['normal'].reshape(-1).astype(np.float32),
                          colors=colors,
                          triangle_count=num_triangles,
                          header=header)

def encode_binary(geometry: GeometryBuffer) -> bytes:
    geometry.validate()
    num_triangles = geometry.triangle_count
    records = np.zeros(num_triangles, dtype=RECORD_DTYPE)
    if len(geometry.normals):
        records['normal'] = np.asarray(geometry.normals, dtype=np.float32).reshape(-1, 3)
    records['vectors'] = np.asarray(geometry.vertices, dtype=np.float32).reshape(-1, 3, 3)
    records['attr'] = encode_colors(geometry.colors, num_triangles)
    return bytes(geometry.header) + struct.pack(COUNT_FORMAT, num_triangles) + records.tobytes()
