from .results import ResultsMixin

__all__ = ["ResultsMixin"]
