from .text import clean_text, element_text

__all__ = ["clean_text", "element_text"]
