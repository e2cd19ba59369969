"""league/ -- Teams and players for CourtStats.

Layer rule: league/ imports stdlib, third-party libraries and core/ only.
Route-level authorization lives in api/; this package never sees a principal.
"""
