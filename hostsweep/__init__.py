"""
hostsweep: find live hosts in an IPv4 range and report their open TCP services.
"""

__version__ = "1.0.0"
