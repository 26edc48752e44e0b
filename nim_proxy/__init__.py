"""OpenAI-compatible proxy for the NVIDIA NIM chat completions API."""

__version__ = "0.1.0"
