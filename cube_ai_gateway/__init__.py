"""
Cube AI Gateway.

Quota-limited gateway between a semantic analytics layer and Google Gemini.
"""

__version__ = "1.0.0"
