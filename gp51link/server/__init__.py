from gp51link.server.server import HTTPServer

__all__ = ["HTTPServer"]
