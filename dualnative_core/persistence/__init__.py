"""
Dual-Native persistence layer: database bindings, storage backends and resource providers
"""
