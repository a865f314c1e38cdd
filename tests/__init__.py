"""Test suite for the nestedset package."""
