"""
Unit tests that mirror the source code structure.

Tests individual components in isolation with mocked dependencies.
Each test module should correspond to a source module and test
its public interface and business logic.
"""