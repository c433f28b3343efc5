"""auth/ -- Authentication and authorization package for Userbase.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/. api/ imports from auth/, not the other way
around. The single exception is auth/dependencies.py, which imports FastAPI
because it is part of the dependency injection system.
"""
