"""Infrastructure components for the voice interview system.

This module contains low-level technical components that provide
foundational capabilities for the interview system: audio devices and
speech engines, the LLM client, and result storage.
"""
