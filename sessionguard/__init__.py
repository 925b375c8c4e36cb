"""
sessionguard: session lifecycle and login-conflict resolution engine.
"""

__version__ = "0.1.0"
