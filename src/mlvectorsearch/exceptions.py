"""
Exceptions raised by MLVectorSearch.
"""


class ConfigurationError(ValueError):
    """Invalid or incompatible configuration passed to a public operation.

    Raised eagerly at call time, e.g. for a non-cosine metric given to
    RandomProjectionLSH, a signature length that is not a multiple of the
    word size, ``k <= 0`` or a negative radius.
    """


class CollectionNotFoundError(KeyError):
    """No collection has been built under the requested namespace."""

    def __init__(self, namespace: str):
        super().__init__(namespace)
        self.namespace = namespace

    def __str__(self) -> str:
        return f"Collection '{self.namespace}' not found"
