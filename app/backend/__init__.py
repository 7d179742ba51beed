"""
Personal Information Parser Backend Application.

A FastAPI service that extracts structured personal information from free
text and driver's license images using an LLM (Groq by default).
"""

__version__ = "1.0.0"
