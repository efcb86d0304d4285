"""
Dual-Native miscellaneous helper modules
"""
