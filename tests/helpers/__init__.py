"""Test helper utilities."""

from tests.helpers.fake_backend import FakeBackend, network_error

__all__ = ["FakeBackend", "network_error"]
