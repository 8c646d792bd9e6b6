"""
JWKS client package.

Retrieves and caches the issuer's JSON Web Key Set used to verify bearer
token signatures.

Key points:
- One long-lived HTTP client; keys are cached for a refresh interval.
- An unknown kid triggers one eager refresh to pick up rotated keys.
- A failed refresh keeps serving the last good key set.
"""
