"""auth/ -- Authentication and authorization package for BizRecords.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or records/.
api/ and records/ import from auth/, not the other way around.
"""
