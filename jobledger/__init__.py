"""
jobledger: persistence core for job events and job state.
"""

__version__ = "0.1.0"
