"""Asyncio Stratum mining server: wire messages, miner sessions, handlers and coinbase building."""

__version__ = "0.1.0"
__all__ = ["errors", "messages", "session", "handlers", "work", "server"]