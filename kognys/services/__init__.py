"""Kognys client services."""
