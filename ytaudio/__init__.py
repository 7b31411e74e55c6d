"""
ytaudio: turns remote media links into cached local audio artifacts.
"""

__version__ = "1.0.0"
