"""
Request and response schemas for the Collections Follow-up Service API.
"""
