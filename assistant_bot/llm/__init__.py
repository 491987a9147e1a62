from .client import LLMAnswer, LLMClient, LLMError, ModelChoice, select_model

__all__ = ["LLMAnswer", "LLMClient", "LLMError", "ModelChoice", "select_model"]
