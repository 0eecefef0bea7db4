from edgellm.tokenization.vocabulary import Vocabulary, is_special_token


class CharTokenizer:
    """
    A character-level tokenizer over a fixed `Vocabulary`.

    Every character maps to one token. Characters outside the vocabulary are
    encoded as the unknown token, so encoding never fails for well-typed input.
    """

    def __init__(self, vocabulary: Vocabulary | None = None):
        """
        Initializes the CharTokenizer.

        Args:
            vocabulary (Vocabulary, optional): The token table to use. Defaults to
                                               `Vocabulary.build()`.
        """
        self.vocabulary: Vocabulary = vocabulary if vocabulary is not None else Vocabulary.build()

    @property
    def vocab_size(self) -> int:
        return len(self.vocabulary)

    @property
    def pad_token_id(self) -> int:
        return self.vocabulary.pad_token_id

    @property
    def unk_token_id(self) -> int:
        return self.vocabulary.unk_token_id

    @property
    def bos_token_id(self) -> int:
        return self.vocabulary.bos_token_id

    @property
    def eos_token_id(self) -> int:
        return self.vocabulary.eos_token_id

    def encode(self, text: str) -> list[int]:
        """
        Encodes a string into token ids, prefixed with the begin-of-sequence id.

        Args:
            text (str): The input string to encode.

        Returns:
            list[int]: ``[bos_token_id, id(c0), id(c1), ...]``. Unsupported
                       characters become ``unk_token_id``.
        """
        if not isinstance(text, str):
            raise TypeError("Input text must be a string.")

        stoi = self.vocabulary.stoi
        unk = self.unk_token_id
        tokens: list[int] = [self.bos_token_id]
        tokens.extend(stoi.get(char, unk) for char in text)
        return tokens

    def decode(self, tokens: list[int]) -> str:
        """
        Decodes token ids back into text.

        Ids without a mapping are skipped and reserved tokens are elided, so
        ``decode(encode(text)) == text`` for text made of supported characters.
        """
        if not isinstance(tokens, list):
            raise TypeError("Input tokens must be a list of integers.")
        if not all(isinstance(token, int) for token in tokens):
            raise TypeError("All items in the tokens list must be integers.")

        text_chars: list[str] = []
        for token_id in tokens:
            token = self.vocabulary.id_to_token(token_id)
            if token is None or is_special_token(token):
                continue
            text_chars.append(token)
        return "".join(text_chars)
