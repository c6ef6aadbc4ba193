import logging
from typing import List, Optional

import httpx

from codegraph.core.interfaces.reasoner_interface import ReasonerInterface
from codegraph.core.types.common_types import NarseseStatement
from codegraph.modules.reasoning.narsese import NarseseTranslator, parse_ona_response
from codegraph.utils.exceptions import TransientError

logger = logging.getLogger(__name__)


class OnaException(TransientError):
    pass


class OfflineReasoner(ReasonerInterface):
    """Rule-based translation without inference. Used when no ONA endpoint is configured."""

    def __init__(self, translator: Optional[NarseseTranslator] = None):
        self.translator = translator or NarseseTranslator()

    async def translate(self, query: str) -> List[NarseseStatement]:
        return self.translator.translate(query)

    async def infer(self, statements: List[NarseseStatement]) -> List[NarseseStatement]:
        return list(statements)


class OnaClient(ReasonerInterface):
    """
    Talks to an ONA (OpenNARS for Applications) HTTP shim.
    The shim accepts newline-separated Narsese/commands in {"input": ...}
    and answers with ONA's raw text output.
    """

    def __init__(
        self,
        base_url: str,
        cycles: int = 100,
        request_timeout: float = 30.0,
        translator: Optional[NarseseTranslator] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.cycles = cycles
        self.request_timeout = request_timeout
        self.translator = translator or NarseseTranslator()
        self.client = client

    async def initialize(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.request_timeout, connect=10)
            )
            logger.info(f"ONA client ready at {self.base_url}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def translate(self, query: str) -> List[NarseseStatement]:
        return self.translator.translate(query)

    def _build_input(self, statements: List[NarseseStatement]) -> str:
        lines = [s.to_narsese() for s in statements]
        if self.cycles:
            lines.append(str(self.cycles))
        # Ask which components the query relates to
        lines.append("<query --> ?what>?")
        return "\n".join(lines)

    async def execute(self, command: str) -> str:
        if self.client is None:
            await self.initialize()
        try:
            response = await self.client.post("/execute", json={"input": command})
            response.raise_for_status()
        except httpx.TransportError as e:
            raise OnaException(f"ONA unreachable at {self.base_url}: {e}") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise OnaException(f"ONA error {e.response.status_code}: {e.response.text}") from e
            raise
        return response.text

    async def infer(self, statements: List[NarseseStatement]) -> List[NarseseStatement]:
        if not statements:
            return []
        output = await self.execute(self._build_input(statements))
        derived = parse_ona_response(output)
        logger.debug(f"ONA derived {len(derived)} statements from {len(statements)} inputs")
        return list(statements) + derived
