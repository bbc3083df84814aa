"""
calltagger - Version and metadata
"""

__version__ = "0.3.0"
__author__ = "calltagger Contributors"
__license__ = "MIT"
__description__ = "LLM-powered funnel/topic tagging for sales-call transcripts"
