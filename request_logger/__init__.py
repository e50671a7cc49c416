from request_logger.record import LogRecord, decode_body
from request_logger.server import HOST, PORT, BodyReadError, RequestLogServer, main, make_server

__all__ = [
    "HOST",
    "PORT",
    "BodyReadError",
    "LogRecord",
    "RequestLogServer",
    "decode_body",
    "main",
    "make_server",
]
