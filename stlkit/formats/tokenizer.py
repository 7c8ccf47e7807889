import re
from typing import Optional

from stlkit.errors import MalformedAsciiError

MAX_TOKEN_LENGTH = 1024
TOKEN_RE = re.compile(rb'[^\x00-\x20\x7f]+')
SEPARATOR_RE = re.compile(rb'[\x00-\x20\x7f]*')
SPACE_RE = re.compile(rb'[ \t\f\v]*')
LINE_END_RE = re.compile(rb'\r\n?|\n')


class Tokenizer:
    """Cursor over an immutable byte string, yielding whitespace-delimited tokens."""

    def __init__(self, data: bytes, max_token_length: Optional[int] = MAX_TOKEN_LENGTH) -> None:
        self.data = bytes(data)
        self.max_token_length = max_token_length
        self.pos = 0

    def rewind(self) -> None:
        self.pos = 0

    @property
    def line_number(self) -> int:
        return len(LINE_END_RE.findall(self.data, 0, self.pos)) + 1

    def next_token(self) -> bytes:
        match = TOKEN_RE.search(self.data, self.pos)
        if match is None:
            self.pos = len(self.data)
            return b''
        token = match.group()
        if self.max_token_length is not None and len(token) > self.max_token_length:
            self.pos = match.start()
            raise MalformedAsciiError(f"token of at most {self.max_token_length} bytes",
                                      f"{token[:32].decode('ascii', 'replace')}... ({len(token)} bytes)",
                                      self.line_number)
        self.pos = match.end()
        return token

    def peek_token(self) -> bytes:
        pos = self.pos
        try:
            return self.next_token()
        finally:
            self.pos = pos

    def read_line(self) -> bytes:
        start = SPACE_RE.match(self.data, self.pos).end()
        # lines end at LF, CRLF or a lone CR
        line_end = LINE_END_RE.search(self.data, start)
        if line_end is None:
            self.pos = len(self.data)
            return self.data[start:].rstrip()
        self.pos = line_end.end()
        return self.data[start:line_end.start()].rstrip()

    def __iter__(self):
        while token := self.next_token():
            yield token
