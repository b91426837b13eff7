"""Create, inspect and modify Singularity Image Format (SIF) container files."""

__version__ = "0.1.0"