"""
Store Operator — reconciles Store resources into isolated, guarded
WordPress/WooCommerce installations on a shared cluster.
"""

__version__ = "0.1.0"
