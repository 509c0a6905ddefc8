"""Language model implementations."""

from .base import LanguageModel
from .sap_ai import SAPAIChatModel

__all__ = ["LanguageModel", "SAPAIChatModel"]
