"""
Route modules for the Inkwell web server.

- **memory_routes**: memory core operability
    - `/api/memory/stats`: cache and monitor statistics
    - `/api/memory/monitor`: performance summary and stress signal
    - `/api/memory/search`: scoped memory search
    - `/api/memory/story/related`: related story bible elements
    - `/api/memory/story/index`: index a story bible element
    - `/api/memory/story/continuity`: continuity check for new prose
"""

from .memory_routes import init_memory_routes

__all__ = ["init_memory_routes"]
