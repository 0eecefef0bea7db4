from .char_tokenizer import CharTokenizer
from .tokenizer import BaseTokenizer
from .vocabulary import SUPPORTED_CHARS, Vocabulary

__all__ = ["BaseTokenizer", "CharTokenizer", "SUPPORTED_CHARS", "Vocabulary"]
