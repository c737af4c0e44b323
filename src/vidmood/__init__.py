"""
vidmood - speech-to-emotion analysis for playing video.
"""

__version__ = "0.1.0"
