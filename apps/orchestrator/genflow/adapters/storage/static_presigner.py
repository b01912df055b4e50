"""Deterministic presigner for local development and tests."""

from urllib.parse import quote

from genflow.adapters.storage.base import ObjectPresigner


class StaticPresigner(ObjectPresigner):
    """Builds predictable URLs of the form ``<base>/<key>?expires=<seconds>``.

    Issued keys are recorded in ``issued`` so callers can assert on them.
    """

    def __init__(self, base_url: str = "https://storage.local") -> None:
        self._base_url = base_url.rstrip("/")
        self.issued: list[str] = []

    async def presign(self, key: str, *, expires_in: int) -> str:
        self.issued.append(key)
        return f"{self._base_url}/{quote(key)}?expires={expires_in}"


__all__ = ["StaticPresigner"]
