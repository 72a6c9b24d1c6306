"""
Domain modules of the reference server.
"""
