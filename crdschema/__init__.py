"""Schema and CustomResourceDefinition generation from annotated type declarations."""

__version__ = "0.1.0"