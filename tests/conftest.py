"""Pytest fixtures for docli tests."""

from tests.fixtures.session import *
