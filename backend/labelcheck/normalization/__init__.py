from .normalizer import (
    DEFAULT_STOPWORDS,
    TokenFilter,
    normalize,
    clean_label_ingredient,
    tokenize,
    split_ingredient_text,
)

__all__ = [
    "DEFAULT_STOPWORDS",
    "TokenFilter",
    "normalize",
    "clean_label_ingredient",
    "tokenize",
    "split_ingredient_text",
]
