"""
Dual-Native core: content identity, conditional access and resource catalog
"""

__version__ = "2.0.0"
