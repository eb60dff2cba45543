"""OrionAI Desktop — chat and creative tools on top of the Gemini API."""

__version__ = "1.0.0"
