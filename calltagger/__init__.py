"""
calltagger - classify sales-call transcript chunks against a funnel taxonomy.
"""

from .__version__ import __version__

__all__ = ["__version__"]
