"""Kognys command line interface."""
