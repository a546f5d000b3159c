"""books-bdd: behavior-driven acceptance tests for the Books HTTP API."""

__version__ = "0.1.0"
