"""One-shot helpers for a single prompt."""

from typing import Callable, Iterator, Optional

from .errors import BridgeError
from .options import AgentOptions
from .session import AgentSession
from .types import Message, ResultMessage


def query(prompt: str, options: Optional[AgentOptions] = None) -> Iterator[Message]:
    """Run one prompt in a fresh session and yield its messages.

    The session is stopped when the iterator is exhausted or closed early.
    """
    session = AgentSession(options)
    session.start()
    try:
        session.query(prompt)
        for message in session.each_response():
            yield message
    finally:
        session.stop()


def ask(
    prompt: str,
    options: Optional[AgentOptions] = None,
    on_message: Optional[Callable[[Message], None]] = None,
) -> ResultMessage:
    """Run one prompt and return its ResultMessage.

    Args:
        prompt: The user prompt.
        options: Session configuration.
        on_message: Called with every message, the result included.

    Raises:
        BridgeError: If the CLI's output ends without a result.
    """
    result: Optional[ResultMessage] = None
    for message in query(prompt, options):
        if on_message is not None:
            on_message(message)
        if isinstance(message, ResultMessage):
            result = message

    if result is None:
        raise BridgeError("Claude Code CLI ended the session without a result")
    return result
