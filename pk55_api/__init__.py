"""
PK55 API service.

This package provides a FastAPI application for authentication, the
promotional banner with its time-of-day discount, site settings and the
image gallery, together with the storage and database abstractions they
run on.
"""
