"""
Base Tool class.

A tool is something the model can call. The model addresses a tool by sending
a harmony `Message` whose recipient starts with the tool's name; the tool
answers with one or more messages authored by itself and addressed back to the
assistant.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from openai_harmony import Message


def _maybe_update_inplace_and_validate_channel(
    *, input_message: Message, tool_message: Message
) -> None:
    """
    Messages from a tool must stay on the channel of the message that triggered
    them. An unset channel is filled in; a different one is an error.

    Raises:
        ValueError: If tool_message has a different channel than input_message
    """
    if tool_message.channel != input_message.channel:
        if tool_message.channel is None:
            tool_message.channel = input_message.channel
        else:
            raise ValueError(
                f"Messages from tool should have the same channel ({tool_message.channel=}) as "
                f"the triggering message ({input_message.channel=})."
            )


class Tool(ABC):
    """
    Something the model can call.

    Tools expose APIs that are shown to the model in a syntax that the model
    understands and knows how to call.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        An identifier for the tool. A message is routed to the tool whose name
        matches the start of its recipient field.
        """

    @property
    def output_channel_should_match_input_channel(self) -> bool:
        return True

    async def process(self, message: Message) -> AsyncIterator[Message]:
        """
        Processes a message sent to this tool and yields the replies.

        Do not override this method; override `_process` instead.
        """
        async for m in self._process(message):
            if self.output_channel_should_match_input_channel:
                _maybe_update_inplace_and_validate_channel(input_message=message, tool_message=m)
            yield m

    @abstractmethod
    async def _process(self, message: Message) -> AsyncIterator[Message]:
        """Core tool implementation that concrete tools must override."""
        if False:  # This is to convince the type checker that this is an async generator.
            yield  # type: ignore[unreachable]
        _ = message  # Stifle "unused argument" warning.
        raise NotImplementedError

    @property
    @abstractmethod
    def instruction(self) -> str:
        """A description of the tool for the model, usually placed in the system prompt."""
        raise NotImplementedError

    def instruction_dict(self) -> dict[str, str]:
        return {self.name: self.instruction}
