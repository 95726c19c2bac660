"""auth/ -- Authentication core for Quillblog.

Credential store, local and Google authenticators, identity reconciliation
and the server-side session manager.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/, web/, or posts/.
api/, web/ and posts/ import from auth/, not the other way around.
"""
