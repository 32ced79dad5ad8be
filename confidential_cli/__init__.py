"""
Command line interface for the confidential contract SDK.
"""
