from .request_id import RequestIDMiddleware, bind_user_id
from .logging import LoggingMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "bind_user_id",
]
