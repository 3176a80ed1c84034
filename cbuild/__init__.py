# cbuild/__init__.py
"""
cbuild - recipe driven source package builder

Stages: fetch -> extract -> patch -> build -> install, plus manifest driven
remove and reverse dependency reports over an installation root.
"""

__version__ = "1.0.0"
