"""Domain layer (pure logic).

- Keep board rules, solution generation/validation and hints here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no WebSockets.
- Prefer deterministic functions (time/random passed in as arguments if needed).
"""
