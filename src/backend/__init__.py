"""
Shared service layer: configuration, storage adapters and the error taxonomy.

SDK clients are built by backend.clients.init_backends(), called once from the
application lifespan; nothing here talks to Azure at import time.
"""
