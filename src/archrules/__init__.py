"""archrules - declarative architecture-conformance rules over a codebase model."""

__version__ = "0.4.0"
