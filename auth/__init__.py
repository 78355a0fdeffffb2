"""auth/ -- Authentication, session and authorization core for the inspection gateway.

Layer rule: auth/ imports only stdlib, third-party libraries and
core.config (for Settings and split_csv). It does NOT import from api/.
api/ and main.py import from auth/, not the other way around.
"""
