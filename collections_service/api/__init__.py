"""
API routers for the Collections Follow-up Service.
"""
