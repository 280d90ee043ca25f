"""
Utility modules for the therapy practice backend.

This package contains shared utility functions and helpers used across
the application, including datetime utilities and phone formatting.
"""
