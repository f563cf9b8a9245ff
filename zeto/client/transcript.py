"""Client-side chat transcript with a single provisional placeholder.

Mirrors what the chat UI shows: when a message is sent, the user message and
one "thinking" placeholder are appended. The placeholder is then replaced in
place, by streamed content, by the final answer or by an error message. It
is never duplicated and never persisted.
"""

from zeto.client.accumulator import StreamState
from zeto.core.schemas_chat import ChatMessage, ChatRole

THINKING_TEXT = "Thinking..."
ANALYZING_TEXT = "Analyzing the selected documents..."
EMPTY_ANSWER_TEXT = "Empty answer."


class ChatTranscript:
    """Ordered messages of one conversation as displayed to the user."""

    def __init__(self, messages: list[ChatMessage] | None = None):
        self.messages: list[ChatMessage] = list(messages or [])
        self._pending_id: str | None = None

    @property
    def pending(self) -> ChatMessage | None:
        if self._pending_id is None:
            return None
        return self.messages[self._pending_index()]

    def _pending_index(self) -> int:
        for i, message in enumerate(self.messages):
            if message.id == self._pending_id:
                return i
        raise LookupError("Provisional message is no longer in the transcript")

    def begin(self, text: str, grounded: bool = False) -> ChatMessage:
        """
        Append the user's message and the assistant placeholder.

        Raises:
            RuntimeError: If a previous answer is still pending
        """
        if self._pending_id is not None:
            raise RuntimeError("An answer is already pending")

        user_message = ChatMessage(role=ChatRole.USER, content=text)
        placeholder = ChatMessage(
            role=ChatRole.ASSISTANT,
            content=ANALYZING_TEXT if grounded else THINKING_TEXT,
            is_provisional=True,
        )
        self.messages.extend([user_message, placeholder])
        self._pending_id = placeholder.id
        return user_message

    def on_state(self, state: StreamState) -> None:
        """Accumulator state hook: clear the thinking text on first delta."""
        if state == StreamState.STREAMING and self._pending_id is not None:
            index = self._pending_index()
            self.messages[index] = self.messages[index].model_copy(update={"content": ""})

    def apply_delta(self, delta: str) -> None:
        """Append streamed text to the placeholder (still provisional)."""
        if self._pending_id is None:
            return
        index = self._pending_index()
        current = self.messages[index]
        self.messages[index] = current.model_copy(update={"content": current.content + delta})

    def _finalize(self, content: str) -> ChatMessage:
        if self._pending_id is None:
            raise RuntimeError("No answer is pending")
        index = self._pending_index()
        final = ChatMessage(role=ChatRole.ASSISTANT, content=content)
        self.messages[index] = final
        self._pending_id = None
        return final

    def complete(self, text: str) -> ChatMessage:
        """Replace the placeholder with the final answer."""
        return self._finalize(text or EMPTY_ANSWER_TEXT)

    def fail(self, error: str) -> ChatMessage:
        """Replace the placeholder with an error message."""
        return self._finalize(f"Error: {error}")

    def persistable(self) -> list[ChatMessage]:
        """Messages that may be written to the store."""
        return [m for m in self.messages if not m.is_provisional]
