#!/usr/bin/env python3
"""CLI entry point for the authorization server.

Starts the server under Hypercorn with the process configuration from the
environment. For ASGI deployment use ``authz_server.app:create_app()``.
"""

from authz_server.main import main

if __name__ == "__main__":
    main()
