"""
Backend package for the J&C Esquadrias management system.

This package provides a FastAPI application with a record store and job
queue abstraction, plus the order, PORT and commission routines that run
on top of them.
"""
