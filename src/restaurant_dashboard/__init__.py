"""
Restaurant operations dashboard backend.

Bookings and their dining-status lifecycle, table availability and
occupancy, opening hours, menu, staff, VIP grants, staff notifications and
analytics, exposed through a FastAPI application.
"""

__version__ = "0.1.0"
