"""auth/ -- Authentication package for Gatekeeper: principals, tokens, account flows.

Layer rule: auth/ imports only core/, db/, stdlib and third-party libraries.
It does NOT import from api/, rbac/, or cache/.
api/ and rbac/ import from auth/, not the other way around.
"""
