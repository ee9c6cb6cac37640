"""Tests - Test suite and honest proof generation."""
