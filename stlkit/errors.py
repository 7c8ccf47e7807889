from typing import Optional

class StlError(Exception):
    pass

class TooSmallError(StlError, ValueError):
    def __init__(self, size: int, minimum: int, path: Optional[str] = None) -> None:
        self.size = size
        self.minimum = minimum
        self.path = path
        where = f"{path}: " if path else ""
        super().__init__(f"{where}input is {size} bytes, smaller than the minimum of {minimum} bytes")

class MalformedAsciiError(StlError, ValueError):
    def __init__(self, expected: str, actual: str, line: Optional[int] = None) -> None:
        self.expected = expected
        self.actual = actual
        self.line = line
        where = f" on line {line}" if line is not None else ""
        super().__init__(f"Invalid ASCII STL{where}: expected [{expected}] but got [{actual}]")

class MalformedBinaryError(StlError, ValueError):
    def __init__(self, declared: int, expected_size: int, actual_size: int) -> None:
        self.declared = declared
        self.expected_size = expected_size
        self.actual_size = actual_size
        problem = "truncated" if actual_size < expected_size else "has trailing data"
        super().__init__(f"Invalid binary STL: {declared} triangles require {expected_size} bytes, "
                         f"file is {actual_size} bytes ({problem})")

class InvalidGeometryError(StlError, ValueError):
    pass
