"""
Routers package.
"""
