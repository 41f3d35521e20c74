"""CodeSensei backend.

Manages local projects and delegates requirement writing and code generation
to a remote OpenCode-compatible agent server over HTTP.
"""

__version__ = "0.1.0"
