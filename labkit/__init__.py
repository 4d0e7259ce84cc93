"""Simulated RPC, a key/value server and MapReduce for distributed-systems experiments."""

__version__ = "0.1.0"