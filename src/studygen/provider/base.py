from typing import Protocol

from studygen.models import ProviderRequest, ProviderResponse


class ProviderClient(Protocol):
    """
    ProviderClient stands as a common protocol that all
    LLM backends must satisfy.

    Clients map the uniform ProviderRequest onto their native API and
    normalize the answer into a ProviderResponse. Failures surface as
    ProviderError; a client never records usage itself.
    """

    @property
    def name(self) -> "str": ...

    def is_configured(self) -> "bool": ...

    async def send(self, request: "ProviderRequest") -> "ProviderResponse": ...

    async def close(self) -> "None": ...
