"""
Prompt Manager
Versioned prompt templates with diffing and usage statistics
"""

__version__ = "0.1.0"
