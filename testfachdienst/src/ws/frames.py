"""
STOMP 1.2 frame codec.

A frame is a command line, header lines, a blank line, a body and a NUL
octet. Header values are escaped in every frame except CONNECT and
CONNECTED. End-of-line octets between frames are heart-beats and are
skipped.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

NULL = b"\x00"
EOL = b"\n"

CONNECT = "CONNECT"
STOMP = "STOMP"
CONNECTED = "CONNECTED"
SEND = "SEND"
SUBSCRIBE = "SUBSCRIBE"
UNSUBSCRIBE = "UNSUBSCRIBE"
ACK = "ACK"
NACK = "NACK"
BEGIN = "BEGIN"
COMMIT = "COMMIT"
ABORT = "ABORT"
DISCONNECT = "DISCONNECT"
MESSAGE = "MESSAGE"
RECEIPT = "RECEIPT"
ERROR = "ERROR"

CLIENT_COMMANDS = frozenset(
    {CONNECT, STOMP, SEND, SUBSCRIBE, UNSUBSCRIBE, ACK, NACK, BEGIN, COMMIT, ABORT, DISCONNECT}
)
SERVER_COMMANDS = frozenset({CONNECTED, MESSAGE, RECEIPT, ERROR})
UNESCAPED_COMMANDS = frozenset({CONNECT, CONNECTED})

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}


class FrameParseError(ValueError):
    """Raised for input that is not a well-formed STOMP frame."""


@dataclass
class StompFrame:
    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


def escape_header(value: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in value)


def unescape_header(value: str) -> str:
    """
    Reverse header escaping.

    Raises:
        FrameParseError: On an undefined escape sequence
    """
    if "\\" not in value:
        return value

    result = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue
        escaped = next(chars, None)
        if escaped not in _UNESCAPES:
            raise FrameParseError(f"Undefined escape sequence \\{escaped or ''} in header")
        result.append(_UNESCAPES[escaped])
    return "".join(result)


def _read_line(data: bytes, pos: int) -> Tuple[str, int]:
    end = data.find(EOL, pos)
    if end == -1:
        raise FrameParseError("Incomplete frame: missing end of line")
    line = data[pos:end]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line.decode("utf-8"), end + 1


def _parse_one(data: bytes, pos: int) -> Tuple[StompFrame, int]:
    command, pos = _read_line(data, pos)
    if command not in CLIENT_COMMANDS and command not in SERVER_COMMANDS:
        raise FrameParseError(f"Unknown command {command!r}")

    escaped = command not in UNESCAPED_COMMANDS
    headers: Dict[str, str] = {}
    while True:
        line, pos = _read_line(data, pos)
        if not line:
            break
        name, sep, value = line.partition(":")
        if not sep:
            raise FrameParseError(f"Illegal header line {line!r}")
        if escaped:
            name, value = unescape_header(name), unescape_header(value)
        # repeated headers: the first occurrence wins
        headers.setdefault(name, value)

    content_length = headers.get("content-length")
    if content_length is not None:
        try:
            length = int(content_length)
        except ValueError:
            raise FrameParseError(f"Invalid content-length {content_length!r}") from None
        if length < 0:
            raise FrameParseError(f"Invalid content-length {content_length!r}")
        end = pos + length
        if len(data) <= end or data[end:end + 1] != NULL:
            raise FrameParseError("Frame body does not match content-length")
    else:
        end = data.find(NULL, pos)
        if end == -1:
            raise FrameParseError("Incomplete frame: missing NUL terminator")

    return StompFrame(command=command, headers=headers, body=data[pos:end]), end + 1


def _skip_heartbeats(data: bytes, pos: int) -> int:
    while pos < len(data) and data[pos:pos + 1] in (b"\n", b"\r"):
        pos += 1
    return pos


def parse_frames(data: Union[bytes, str]) -> List[StompFrame]:
    """
    Parse all frames contained in one WebSocket message.

    A message with nothing but end-of-line octets is a heart-beat and
    yields an empty list.

    Raises:
        FrameParseError: If the data is not a sequence of complete frames
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    frames = []
    pos = _skip_heartbeats(data, 0)
    while pos < len(data):
        try:
            frame, pos = _parse_one(data, pos)
        except UnicodeDecodeError as e:
            raise FrameParseError(f"Frame headers are not valid UTF-8: {e}") from e
        frames.append(frame)
        pos = _skip_heartbeats(data, pos)
    return frames


def encode_frame(frame: StompFrame) -> bytes:
    """Serialize a frame, adding content-length when a body is present."""
    escaped = frame.command not in UNESCAPED_COMMANDS
    headers = dict(frame.headers)
    if frame.body and "content-length" not in headers:
        headers["content-length"] = str(len(frame.body))

    lines = [frame.command]
    for name, value in headers.items():
        if escaped:
            name, value = escape_header(name), escape_header(str(value))
        lines.append(f"{name}:{value}")

    head = "\n".join(lines) + "\n\n"
    return head.encode("utf-8") + frame.body + NULL


def error_frame(message: str, detail: str = "", receipt_id: Optional[str] = None) -> StompFrame:
    headers = {"message": message, "content-type": "text/plain"}
    if receipt_id is not None:
        headers["receipt-id"] = receipt_id
    return StompFrame(command=ERROR, headers=headers, body=detail.encode("utf-8"))
