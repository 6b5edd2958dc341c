"""auth/ -- Accounts, credentials and session tokens for usergate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or security/.
api/ and security/ import from auth/, not the other way around.
"""
