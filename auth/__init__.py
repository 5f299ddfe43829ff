"""auth/ -- Accounts, credentials and session tokens for Gatehouse.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
