"""
📤 SCHEDULED PUBLISHER
Scheduled Instagram Reels and YouTube publishing backend
"""

__version__ = "1.0.0"
