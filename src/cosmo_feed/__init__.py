"""
Cosmo Feed - live token-creation feed with asynchronous metadata enrichment.

This package connects to a push stream of newly created tokens, keeps an ordered
feed of the most recent ones, and fills in each token's metadata in the background
as the lookups complete.
"""

__version__ = "1.0.0"
__author__ = "Nova Trade Team"
