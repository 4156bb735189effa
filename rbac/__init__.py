"""rbac/ -- Role/permission model and the authorization decision pipeline.

Layer rule: rbac/ may import from auth/, core/, db/ and cache/.
It does NOT import from api/. api/ imports from rbac/, not the other way around.
"""
