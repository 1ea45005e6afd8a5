import httpx

from fastrelay.datastructures import SinkResponse
from fastrelay.logger import logger


class HttpSink:
    """POSTs each message body to the downstream endpoint.

    Transport failures surface as ``httpx`` exceptions. Classifying them is
    left to the caller.
    """

    def __init__(
        self,
        url: str,
        timeout_secs: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.client = httpx.AsyncClient(
            timeout=timeout_secs,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def post(self, body: bytes) -> SinkResponse:
        response = await self.client.post(self.url, content=body)
        logger.debug(f"The sink answered with status {response.status_code}")
        return SinkResponse(status_code=response.status_code, body=response.text)

    async def close(self) -> None:
        await self.client.aclose()
