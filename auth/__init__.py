"""auth/ -- Authentication and authorization package for CourtStats.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/ or league/.
api/ imports from auth/, not the other way around.
"""
