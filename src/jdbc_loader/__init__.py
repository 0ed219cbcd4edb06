"""JDBC source -> warehouse table batch loader."""

__version__ = "0.1.0"
