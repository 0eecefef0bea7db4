from edgellm.errors import ConfigLoadError

PAD_TOKEN = "<pad>"
UNK_TOKEN = "<unk>"
BOS_TOKEN = "<bos>"
EOS_TOKEN = "<eos>"

# Reserved tokens occupy ids 0..3 in this order.
SPECIAL_TOKENS: tuple[str, ...] = (PAD_TOKEN, UNK_TOKEN, BOS_TOKEN, EOS_TOKEN)

SUPPORTED_CHARS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789 .!?,:;-()[]{}\"'"


def is_special_token(token: str) -> bool:
    """Tokens written with delimiter markup (``<...>``) are never emitted as text."""
    return token.startswith("<")


class Vocabulary:
    """
    Bidirectional token/id table.

    The table is built deterministically: the four reserved tokens at fixed ids,
    then one id per supported character in `SUPPORTED_CHARS` order.
    """

    def __init__(self, stoi: dict[str, int], max_size: int | None = None):
        if max_size is not None and len(stoi) > max_size:
            raise ConfigLoadError(f"Vocabulary needs {len(stoi)} entries but vocab_size is {max_size}.")
        if len(set(stoi.values())) != len(stoi):
            raise ValueError("Token ids must be unique.")

        self.stoi: dict[str, int] = dict(stoi)
        self.itos: dict[int, str] = {i: s for s, i in self.stoi.items()}
        self.max_size = max_size

    @classmethod
    def build(cls, vocab_size: int | None = None, chars: str = SUPPORTED_CHARS) -> "Vocabulary":
        stoi: dict[str, int] = {token: i for i, token in enumerate(SPECIAL_TOKENS)}
        for offset, char in enumerate(chars):
            stoi[char] = len(SPECIAL_TOKENS) + offset
        return cls(stoi, max_size=vocab_size)

    def __len__(self) -> int:
        return len(self.stoi)

    def __contains__(self, token: str) -> bool:
        return token in self.stoi

    def token_to_id(self, token: str) -> int | None:
        return self.stoi.get(token)

    def id_to_token(self, token_id: int) -> str | None:
        return self.itos.get(token_id)

    @property
    def pad_token_id(self) -> int:
        return self.stoi[PAD_TOKEN]

    @property
    def unk_token_id(self) -> int:
        return self.stoi[UNK_TOKEN]

    @property
    def bos_token_id(self) -> int:
        return self.stoi[BOS_TOKEN]

    @property
    def eos_token_id(self) -> int:
        return self.stoi[EOS_TOKEN]
