from . import notifications, ping, tickets

__all__ = ["notifications", "ping", "tickets"]
