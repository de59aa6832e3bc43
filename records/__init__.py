"""records/ -- Scoped access to owned business records and user rows.

Layer rule: records/ imports from core/ and auth/. It does NOT import from api/.
"""
