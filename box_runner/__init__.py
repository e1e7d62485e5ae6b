"""Run a command inside a live bordered terminal box and keep its output."""

__version__ = "0.1.0"
