"""
Services.

Business logic layer of the package approval engine.
"""
