"""claudegate -- HTTP/SSE gateway in front of the claude CLI.

Each chat request is admitted through a bounded concurrency limiter,
runs the CLI as a short-lived subprocess scoped by a permission mode,
and streams the CLI's JSON events back to the client as Server-Sent
Events.
"""

__version__ = "0.1.0"
