"""
Concrete implementations: the reference engine and the host boundary.
"""
