"""
Utilities package for Share Mounter.

Helpers without mount semantics, such as locating the host specific
settings file.
"""
