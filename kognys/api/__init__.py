"""Kognys paper API client."""

from kognys.api.client import PaperApi, PaperResponse, generate_user_id, get_user_id

__all__ = ["PaperApi", "PaperResponse", "generate_user_id", "get_user_id"]
