"""
🌐 SCHEDULED PUBLISHER - API Routers
"""
