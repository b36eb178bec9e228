"""Test package for geocluster.

This package contains:
- Unit tests (test_spatial.py, test_viewport.py, test_coordinator.py, test_config.py, test_frames.py)
- Integration tests (test_integration.py)
- Test configuration (conftest.py)
"""
