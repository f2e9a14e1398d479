from docflow.ai.models import ConversationTurn, FileReference


class Conversation:
    """Ordered user/model turns carried from Pass 1 into Pass 2."""

    def __init__(self, turns: list[ConversationTurn] | None = None) -> None:
        self._turns: list[ConversationTurn] = list(turns or [])

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def add_user(self, text: str, file_ref: FileReference | None = None) -> None:
        self._turns.append(ConversationTurn(role="user", text=text, file_ref=file_ref))

    def add_model(self, text: str) -> None:
        self._turns.append(ConversationTurn(role="model", text=text))

    def __len__(self) -> int:
        return len(self._turns)

    def __bool__(self) -> bool:
        return bool(self._turns)
