"""HTTP surface of claudegate.

A FastAPI application that admits chat requests through the
concurrency limiter, streams the CLI's output back as Server-Sent
Events, and exposes limiter status and session bookkeeping routes.
"""
