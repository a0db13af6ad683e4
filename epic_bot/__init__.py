"""
Epic Bot: turns a one-line feature request into reviewed user stories
and publishes them to GitHub as a milestone with linked issues.
"""

__version__ = "0.3.0"
