"""Test mocks for cloudcompose.

Provides mock implementations for testing:
- MockPlatform: Simulates the cloud platform REST API in memory
"""

from .mock_platform import MockPlatform

__all__ = ["MockPlatform"]
