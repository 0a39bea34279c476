"""ClaudeBox — run assistant CLIs in a sandbox with scoped GitHub access."""

__version__ = "1.0.0"
