"""Subtitle vocabulary service: YouTube caption download and LLM vocabulary annotation."""

__version__ = "0.1.0"
