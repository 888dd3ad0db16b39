from .routes import router, get_services
from .websocket import handle_websocket, manager

__all__ = ["router", "get_services", "handle_websocket", "manager"]
