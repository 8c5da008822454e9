"""
SEO remediation engine.
"""

__project__ = "seofix"
__version__ = "0.1.0"
