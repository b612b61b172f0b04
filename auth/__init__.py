"""auth/ -- Authentication and session security core for authcore.

Password hashing, credential verification, token pair issuance, refresh
token rotation with reuse detection, and revocation.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/. api/ and main.py import from auth/, not the
other way around.
"""
