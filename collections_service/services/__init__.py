"""
Services package for the Collections Follow-up Service.
"""
