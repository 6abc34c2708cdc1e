"""
=============================================================================
HANDLERS
=============================================================================

1. resolver
   - resolve(config, uri) → File | Directory | Rejected
   - All path-safety checks live here

2. StaticFileHandler / serve_static()
   - handle(method, uri) → HTTPResponse, the transport's only callback
   - File streaming, index.html, directory listings, error mapping

    from fileserver.handlers import serve_static

    handler = serve_static("/srv/www")
    response = handler.handle("GET", "/")

=============================================================================
"""

from .resolver import File, Directory, Rejected, ResolvedTarget, resolve, locate
from .static import StaticFileHandler, serve_static

__all__ = [
    "File",
    "Directory",
    "Rejected",
    "ResolvedTarget",
    "resolve",
    "locate",
    "StaticFileHandler",
    "serve_static",
]
