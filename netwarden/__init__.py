"""
NetWarden

Network traffic monitoring and baseline anomaly detection.
"""

__version__ = "0.1.0"
