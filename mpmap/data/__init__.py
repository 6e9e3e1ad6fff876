"""
Data loading and file output
"""
