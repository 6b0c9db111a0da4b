"""Configuration, @path prompt assembly, output rendering and chat sessions for OpenAI-compatible chat completions."""

__version__ = "0.1.0"