"""Publisher logic."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, InstanceOf, validate_call

from fastrelay.exceptions import FastRelayException
from fastrelay.logger import logger
from fastrelay.observability import get_apm_provider
from fastrelay.types import MessageSender


class Publisher:
    """Forwards payloads to the source topic, unchanged apart from serialization."""

    def __init__(self, sender: MessageSender) -> None:
        self.sender = sender

    @validate_call(config=ConfigDict(strict=True, arbitrary_types_allowed=True))
    async def publish(
        self,
        data: InstanceOf[BaseModel] | dict[str, Any] | str | bytes,
        attributes: dict[str, str] | None = None,
    ) -> str:
        body = self._serialize_message(data)

        headers = get_apm_provider().get_distributed_trace_context()
        headers.update(attributes or {})

        message_id = await self.sender.send(body, headers)
        logger.info(f"Message published with id {message_id}")
        return message_id

    def _serialize_message(self, data: BaseModel | dict[str, Any] | str | bytes) -> bytes:
        if isinstance(data, bytes):
            return data

        if isinstance(data, str):
            return data.encode(encoding="utf-8")

        if isinstance(data, dict):
            json_data = json.dumps(data, indent=None, separators=(",", ":"))
            return json_data.encode(encoding="utf-8")

        if isinstance(data, BaseModel):
            json_data = data.model_dump_json(indent=None)
            return json_data.encode(encoding="utf-8")

        raise FastRelayException(
            f"The message {data} is not serializable. "
            "Please send as one of the following formats: BaseModel, dict, str or bytes."
        )
