"""
Post-meeting assistant: calendar sync, meeting bots, follow-up content and social publishing.
"""

__version__ = "1.0.0"
