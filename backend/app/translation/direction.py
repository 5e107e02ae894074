from __future__ import annotations

from backend.app.translation.types import (
    SWAP_CLEAR,
    SWAP_EXCHANGE,
    SWAP_POLICIES,
    Language,
)


class LanguageDirectionState:
    """Which of the two session languages is the source and which the target.

    The state also holds the last input/output texts so a swap can carry them
    over according to ``swap_policy``:

    - ``preserve`` leaves both texts untouched.
    - ``exchange`` moves the previous output into the input and vice versa.
    - ``clear`` drops both.

    Swapping never touches the cache or the cooldown gate.
    """

    def __init__(
        self,
        first: Language,
        second: Language,
        swap_policy: str = SWAP_EXCHANGE,
    ) -> None:
        if first.code == second.code:
            raise ValueError("direction languages must differ")
        if swap_policy not in SWAP_POLICIES:
            raise ValueError(f"unsupported swap policy: {swap_policy}")
        self._initial = (first, second)
        self._source = first
        self._target = second
        self._swap_policy = swap_policy
        self._input_text = ""
        self._output_text = ""

    @property
    def swap_policy(self) -> str:
        return self._swap_policy

    @property
    def input_text(self) -> str:
        return self._input_text

    @property
    def output_text(self) -> str:
        return self._output_text

    def current(self) -> tuple[Language, Language]:
        return self._source, self._target

    def swap(self) -> tuple[Language, Language]:
        self._source, self._target = self._target, self._source

        if self._swap_policy == SWAP_EXCHANGE:
            self._input_text, self._output_text = self._output_text, self._input_text
        elif self._swap_policy == SWAP_CLEAR:
            self._input_text = ""
            self._output_text = ""
        # preserve keeps both texts as-is

        return self.current()

    def record(self, input_text: str, output_text: str) -> None:
        self._input_text = input_text
        self._output_text = output_text

    def reset(self) -> None:
        self._source, self._target = self._initial
        self._input_text = ""
        self._output_text = ""

    def snapshot(self) -> dict[str, object]:
        return {
            "source_language": self._source.to_dict(),
            "target_language": self._target.to_dict(),
            "swap_policy": self._swap_policy,
            "input_text": self._input_text,
            "output_text": self._output_text,
        }
