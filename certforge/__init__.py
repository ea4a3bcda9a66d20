"""
certforge: mutual-TLS certificate hierarchy generator.
"""

__version__ = "0.1.0"
