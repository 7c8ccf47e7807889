import logging
from pathlib import Path
from typing import Optional

from stlkit.formats.ascii import parse_ascii, format_ascii
from stlkit.formats.binary import decode_binary, encode_binary
from stlkit.formats.detect import StlFormat, detect_format
from stlkit.formats.tokenizer import MAX_TOKEN_LENGTH
from stlkit.geometry.buffer import GeometryBuffer

logger = logging.getLogger(__name__)

# Parsing / serialization

def parse_stl(data: bytes, max_token_length: Optional[int] = MAX_TOKEN_LENGTH) -> GeometryBuffer:
    match detect_format(data):
        case StlFormat.BINARY: return decode_binary(data)
        case StlFormat.ASCII: return parse_ascii(data, max_token_length)

def load_stl(path: Path | str, max_token_length: Optional[int] = MAX_TOKEN_LENGTH) -> GeometryBuffer:
    with open(path, 'rb') as f:
        data = f.read()
    geometry = parse_stl(data, max_token_length)
    logger.debug("Read %s", geometry.summary(str(path)))
    return geometry

def save_stl(path: Path | str, geometry: GeometryBuffer, binary: bool = True, name: Optional[str] = None) -> None:
    # Serialize before opening so a validation failure never truncates an existing file
    if binary:
        payload = encode_binary(geometry)
        with open(path, 'wb') as f:
            f.write(payload)
    else:
        text = format_ascii(geometry, Path(path).stem if name is None else name)
        with open(path, 'w', encoding='utf-8', newline='\n') as f:
            f.write(text)
    logger.debug("Wrote %s", geometry.summary(str(path)))


class StlFile:
    """A GeometryBuffer together with the read/write operations that replace or serialize it."""

    def __init__(self, geometry: Optional[GeometryBuffer] = None) -> None:
        self.geometry = geometry if geometry is not None else GeometryBuffer()

    def read(self, path: Path | str, max_token_length: Optional[int] = MAX_TOKEN_LENGTH) -> None:
        # The buffer is only replaced once the whole file parsed
        self.geometry.replace(load_stl(path, max_token_length))

    def write_binary(self, path: Path | str) -> None:
        save_stl(path, self.geometry, binary=True)

    def write_ascii(self, path: Path | str, name: Optional[str] = None) -> None:
        save_stl(path, self.geometry, binary=False, name=name)

    def compute_normals(self) -> None:
        self.geometry.compute_normals()


# Entry point for testing

if __name__ == '__main__':
    import sys
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <stl_file> [<stl_file> ...]")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    failed = False
    for i, filename in enumerate(sys.argv[1:], start=1):
        stl = StlFile()
        try:
            stl.read(filename)
        except (OSError, ValueError) as e:
            print(f"[{i}] {filename}: {e}")
            failed = True
            continue
        print(f"[{i}] {stl.geometry.summary(filename)}")
    sys.exit(1 if failed else 0)
