"""auth/ -- Credential verification, token issuance and refresh-token rotation.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
The one exception is auth/dependencies.py, which is part of the FastAPI
dependency injection system and may import from fastapi.
"""
