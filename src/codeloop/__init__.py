"""codeloop: a ReAct agent loop for coding inside a project sandbox."""

__version__ = "0.1.0"
