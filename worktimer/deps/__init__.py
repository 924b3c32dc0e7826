"""FastAPI dependencies shared by the API routers.

``require_identity`` resolves the caller's owner email (JWT subject, or the
``X-Owner-Email`` header alongside an API key); ``require_api_access`` only
checks that the caller holds a valid credential.
"""
