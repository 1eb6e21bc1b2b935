"""
OMDb integration client.
"""
