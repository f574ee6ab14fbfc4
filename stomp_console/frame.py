"""
STOMP frame format: serialization and stream parsing.

    COMMAND\n
    header1:value1\n
    header2:value2\n
    \n
    body^@

Header values are escaped as in STOMP 1.2 except on CONNECT and CONNECTED frames.
A bare EOL between frames is a heart-beat.
"""
from enum import Enum
from typing import BinaryIO, Dict, Optional


NULL = b'\x00'
EOL = b'\n'

_ESCAPES = {'\\': '\\\\', '\r': '\\r', '\n': '\\n', ':': '\\c'}
_UNESCAPES = {'\\': '\\', 'r': '\r', 'n': '\n', 'c': ':'}


class FrameError(Exception):
    """Malformed frame on the wire"""
    pass


class Command(str, Enum):
    """Frame commands used by the console"""
    CONNECT = 'CONNECT'
    STOMP = 'STOMP'
    CONNECTED = 'CONNECTED'
    SEND = 'SEND'
    SUBSCRIBE = 'SUBSCRIBE'
    UNSUBSCRIBE = 'UNSUBSCRIBE'
    DISCONNECT = 'DISCONNECT'
    MESSAGE = 'MESSAGE'
    RECEIPT = 'RECEIPT'
    ERROR = 'ERROR'


_RAW_HEADER_COMMANDS = {Command.CONNECT.value, Command.STOMP.value, Command.CONNECTED.value}


def escape_header(text: str) -> str:
    return ''.join(_ESCAPES.get(ch, ch) for ch in text)


def unescape_header(text: str) -> str:
    result = []
    chars = iter(text)
    for ch in chars:
        if ch != '\\':
            result.append(ch)
            continue
        code = next(chars, None)
        if code not in _UNESCAPES:
            raise FrameError(f"Invalid header escape sequence '\\{code or ''}'")
        result.append(_UNESCAPES[code])
    return ''.join(result)


class Frame:
    """A single STOMP frame"""

    def __init__(self,
                 command: str,
                 headers: Optional[Dict[str, str]] = None,
                 body: bytes = b''):
        self.command = command.value if isinstance(command, Command) else command
        self.headers = headers or {}
        self.body = body

    def serialize(self) -> bytes:
        """Serialize frame to wire format"""
        raw = self.command in _RAW_HEADER_COMMANDS
        headers = dict(self.headers)
        if self.body and 'content-length' not in headers:
            headers['content-length'] = str(len(self.body))

        lines = [self.command]
        for key, value in headers.items():
            key, value = str(key), str(value)
            if not raw:
                key, value = escape_header(key), escape_header(value)
            lines.append(f"{key}:{value}")

        head = ('\n'.join(lines) + '\n\n').encode('utf-8')
        return head + self.body + NULL

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def __str__(self) -> str:
        return f"Frame(command={self.command}, headers={len(self.headers)}, body_size={len(self.body)})"


class FrameBuilder:
    """Builder pattern for creating frames"""

    def __init__(self, command: Command):
        self._command = command
        self._headers: Dict[str, str] = {}
        self._body = b''

    def header(self, key: str, value) -> 'FrameBuilder':
        self._headers[key] = str(value)
        return self

    def headers(self, headers: Optional[Dict]) -> 'FrameBuilder':
        for key, value in (headers or {}).items():
            self._headers[str(key)] = str(value)
        return self

    def body(self, data: bytes) -> 'FrameBuilder':
        self._body = data
        return self

    def text_body(self, text: str) -> 'FrameBuilder':
        self._body = text.encode('utf-8')
        return self

    def build(self) -> Frame:
        return Frame(self._command, dict(self._headers), self._body)


class FrameReader:
    """Reads frames one at a time from a buffered binary stream"""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def read_frame(self) -> Optional[Frame]:
        """
        Read the next frame, skipping heart-beats.
        Returns None once the stream is exhausted.
        """
        while True:
            line = self._stream.readline()
            if not line:
                return None
            if line.strip(b'\r\n'):
                break

        command = self._decode_line(line)
        raw = command in _RAW_HEADER_COMMANDS
        headers: Dict[str, str] = {}

        while True:
            line = self._stream.readline()
            if not line:
                return None
            text = self._decode_line(line)
            if not text:
                break
            if ':' not in text:
                self._discard_frame()
                raise FrameError(f"Malformed header line '{text}' in {command} frame")
            key, value = text.split(':', 1)
            if not raw:
                try:
                    key, value = unescape_header(key), unescape_header(value)
                except FrameError:
                    self._discard_frame()
                    raise
            # Repeated headers: the first occurrence wins
            headers.setdefault(key, value)

        length = headers.get('content-length')
        if length is None:
            body = self._read_until_null()
            if body is None:
                return None
        else:
            try:
                size = int(length)
            except ValueError:
                self._discard_frame()
                raise FrameError(f"Invalid content-length '{length}' in {command} frame")
            if size < 0:
                self._discard_frame()
                raise FrameError(f"Negative content-length '{length}' in {command} frame")
            body = self._stream.read(size)
            if len(body) < size:
                return None
            terminator = self._stream.read(1)
            if not terminator:
                return None
            if terminator != NULL:
                self._discard_frame()
                raise FrameError(f"{command} frame body is not NUL terminated")

        return Frame(command, headers, body)

    def _decode_line(self, line: bytes) -> str:
        try:
            return line.rstrip(b'\n').rstrip(b'\r').decode('utf-8')
        except UnicodeDecodeError as e:
            self._discard_frame()
            raise FrameError(f"Frame is not valid UTF-8: {e}")

    def _read_until_null(self) -> Optional[bytes]:
        data = bytearray()
        while True:
            byte = self._stream.read(1)
            if not byte:
                return None
            if byte == NULL:
                return bytes(data)
            data += byte

    def _discard_frame(self) -> None:
        """Skip the rest of a broken frame so the next read starts clean"""
        self._read_until_null()


def connect_frame(virtual_host: str,
                  login: str,
                  passcode: str,
                  heartbeat,
                  extra_headers: Optional[Dict[str, str]] = None) -> Frame:
    """Convenience function to create the CONNECT frame"""
    return (FrameBuilder(Command.CONNECT)
            .header('accept-version', '1.0,1.1,1.2')
            .header('host', virtual_host)
            .header('login', login)
            .header('passcode', passcode)
            .header('heart-beat', f"{heartbeat[0]},{heartbeat[1]}")
            .headers(extra_headers)
            .build())


def subscribe_frame(destination: str, headers: Optional[Dict] = None) -> Frame:
    """Convenience function to create SUBSCRIBE frames"""
    return (FrameBuilder(Command.SUBSCRIBE)
            .header('destination', destination)
            .header('ack', 'auto')
            .headers(headers)
            .build())


def unsubscribe_frame(destination: str, headers: Optional[Dict] = None) -> Frame:
    """Convenience function to create UNSUBSCRIBE frames"""
    return (FrameBuilder(Command.UNSUBSCRIBE)
            .header('destination', destination)
            .headers(headers)
            .build())


def send_frame(destination: str, body: str, headers: Optional[Dict] = None) -> Frame:
    """Convenience function to create SEND frames"""
    return (FrameBuilder(Command.SEND)
            .header('destination', destination)
            .headers(headers)
            .text_body(body)
            .build())


def disconnect_frame() -> Frame:
    """Convenience function to create DISCONNECT frames"""
    return Frame(Command.DISCONNECT)
