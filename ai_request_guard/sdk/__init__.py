"""
SDK for AI Request Guard.

Provides resilient access to the OpenAI operations used for document generation.
"""

from ..core.errors import ConfigurationError, OperationError
from .openai_client import ResilientOpenAI
from .reference_files import reference_vector_store

__all__ = ["ResilientOpenAI", "OperationError", "ConfigurationError", "reference_vector_store"]
