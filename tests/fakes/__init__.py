"""Fake collaborators for trackerkit tests."""

from tests.fakes.fake_tracker import FakeTracker

__all__ = ["FakeTracker"]
