"""Test suite for the live chat broker."""
