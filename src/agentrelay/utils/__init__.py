from .tokens import DefaultTokenCounter, TokenCounter, estimate_tokens

__all__ = ["TokenCounter", "DefaultTokenCounter", "estimate_tokens"]
