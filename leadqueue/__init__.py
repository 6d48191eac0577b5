"""
LeadQueue - lead leasing and queue distribution for call-center agents.
"""
__version__ = "1.0.0"
