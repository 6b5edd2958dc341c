"""security/ -- Pre-route request gate (shield, bot detection, rate limiting).

Layer rule: security/ imports from core/ and auth/ (to read session
identity). It does NOT import from api/.
"""
