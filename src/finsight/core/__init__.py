"""Core building blocks: config, exceptions, money helpers, caching, logging."""
