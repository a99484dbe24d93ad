"""Live feed server: WebSocket fan-out of accepted readings and health check."""

from .entrypoint import create_app as create_app
from .entrypoint import create_server as create_server
from .websockets import ConnectionManager as ConnectionManager
from .websockets import connection_manager as connection_manager
