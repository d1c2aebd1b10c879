"""
Voice and receipt expense capture.

Turns recorded audio and receipt photos into reviewed expense records.
"""

__version__ = "0.1.0"
