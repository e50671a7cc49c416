"""
HTTP server that logs every request it receives as one JSON line on stdout
and answers with an empty 200.
"""

import logging
import re
import sys
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import BinaryIO, Optional, Tuple

from request_logger.record import LogRecord, decode_body

HOST = "0.0.0.0"
PORT = 8888

# longest chunk-size or trailer line accepted in a chunked body
_MAX_LINE = 65536
# largest single read from the socket while collecting a body
_READ_SIZE = 65536
_CHUNK_SIZE = re.compile(rb"[0-9A-Fa-f]+")

logger = logging.getLogger(__name__)


class BodyReadError(Exception):
    """The request body could not be read completely.

    body holds the bytes that were read before the failure.
    """

    def __init__(self, message: str, body: bytes = b""):
        super().__init__(message)
        self.body = body


class RequestHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self.handle_any()

    do_HEAD = do_POST = do_PUT = do_PATCH = do_DELETE = do_OPTIONS = do_GET

    def __getattr__(self, name):
        # extension methods (PROPFIND, PURGE, ...) get the same treatment
        if name.startswith("do_"):
            return self.handle_any
        raise AttributeError(name)

    def handle_any(self):
        failed = False
        try:
            body = self.read_body()
        except BodyReadError as err:
            logger.error("Error while reading request: %s", err)
            body = err.body
            failed = True

        try:
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Length", "0")
            if failed:
                self.send_header("Connection", "close")
            self.end_headers()
        except ConnectionError:
            self.close_connection = True

        record = LogRecord(method=self.command, url=self.path, data=decode_body(body))
        self.server.write_record(record)

    def read_body(self) -> bytes:
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            return self.read_chunked()

        length = self.headers.get("Content-Length")
        if length is None:
            return b""
        try:
            size = int(length)
        except ValueError:
            raise BodyReadError(f"invalid Content-Length {length!r}") from None
        if size < 0:
            raise BodyReadError(f"invalid Content-Length {length!r}")

        body = bytearray()
        try:
            got = self.read_into(body, size)
        except OSError as err:
            raise BodyReadError(str(err), bytes(body)) from err
        if got < size:
            raise BodyReadError(f"unexpected EOF (read {got} of {size} bytes)", bytes(body))
        return bytes(body)

    def read_into(self, body: bytearray, size: int) -> int:
        """Append up to size bytes from the request to body, stopping early at EOF.

        The buffer grows with what actually arrives, whatever size the client announced.
        """
        remaining = size
        while remaining:
            piece = self.rfile.read(min(remaining, _READ_SIZE))
            if not piece:
                break
            body += piece
            remaining -= len(piece)
        return size - remaining

    def read_chunked(self) -> bytes:
        body = bytearray()
        try:
            while True:
                line = self.rfile.readline(_MAX_LINE)
                if not line.endswith(b"\n"):
                    if len(line) >= _MAX_LINE:
                        raise BodyReadError("chunk size line too long", bytes(body))
                    raise BodyReadError("unexpected EOF in chunk size", bytes(body))
                field = line.split(b";", 1)[0].strip()
                if not _CHUNK_SIZE.fullmatch(field):
                    raise BodyReadError(f"malformed chunk size {field!r}", bytes(body))
                size = int(field, 16)
                if size == 0:
                    break

                if self.read_into(body, size) < size:
                    raise BodyReadError("unexpected EOF in chunk data", bytes(body))
                if self.rfile.readline(_MAX_LINE) not in (b"\r\n", b"\n"):
                    raise BodyReadError("malformed chunk terminator", bytes(body))

            # trailers
            while True:
                line = self.rfile.readline(_MAX_LINE)
                if line in (b"\r\n", b"\n", b""):
                    break
        except OSError as err:
            raise BodyReadError(str(err), bytes(body)) from err
        return bytes(body)

    def log_message(self, format, *args):
        return


class RequestLogServer(ThreadingHTTPServer):
    def __init__(self, address: Tuple[str, int], output: Optional[BinaryIO] = None):
        self.output = output if output is not None else sys.stdout.buffer
        super().__init__(address, RequestHandler)

    def write_record(self, record: LogRecord) -> None:
        """Write one record as a single line, in one write call.

        A record that cannot be serialized is dropped without a trace.
        """
        try:
            line = record.to_json().encode("utf-8") + b"\n"
        except (TypeError, ValueError):
            return
        self.output.write(line)
        self.output.flush()


def make_server(address: Tuple[str, int] = (HOST, PORT), output: Optional[BinaryIO] = None) -> RequestLogServer:
    return RequestLogServer(address, output)


def main(argv=None) -> int:
    logger.info("Starting the server on port %d", PORT)
    server = make_server()
    server.serve_forever()
    return 0


def run():
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    sys.exit(main(sys.argv))
