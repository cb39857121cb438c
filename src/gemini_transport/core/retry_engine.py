"""
Retry engine - явная машина состояний одного логического вызова.

Attempting(n) -> Success
              -> Retrying(delay) -> Attempting(n+1)
              -> Exhausted

Engine не спит и не ходит в сеть: его ведёт executor. Поэтому переходы
тестируются без реального транспорта.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .config import RetryPolicy
from .exceptions import GeminiTransportError

logger = logging.getLogger(__name__)


class RetryState(str, Enum):
    """Состояния вызова."""
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Attempt:
    """Одна попытка: номер (с 1) и ошибка, если попытка упала."""
    number: int
    last_error: Optional[GeminiTransportError] = None


@dataclass(frozen=True)
class Transition:
    """
    Результат перехода.

    Attributes:
        state: Новое состояние
        attempt: Попытка, к которой относится переход
        delay: Сколько ждать перед следующей попыткой (только RETRYING)
    """
    state: RetryState
    attempt: Attempt
    delay: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.state in (RetryState.SUCCESS, RetryState.EXHAUSTED)


class RetryEngine:
    """
    Механизм retry для одного вызова.

    Создаётся на каждый логический вызов: между вызовами нет общего
    изменяемого состояния.

    Examples:
        >>> engine = RetryEngine(RetryPolicy(max_attempts=3))
        >>> attempt = engine.start()
        >>> transition = engine.on_failure(error)
        >>> if transition.state is RetryState.RETRYING:
        ...     time.sleep(transition.delay)
        ...     attempt = engine.advance()
    """

    def __init__(self, policy: RetryPolicy):
        """
        Args:
            policy: Политика retry
        """
        self.policy = policy
        self._state: Optional[RetryState] = None
        self._attempt: Optional[Attempt] = None
        self._history: List[Attempt] = []

    def start(self) -> Attempt:
        """Начать вызов: Attempting(1)."""
        if self._state is not None:
            raise RuntimeError("RetryEngine already started")
        return self._begin(1)

    def on_success(self) -> Transition:
        """Attempting(n) -> Success."""
        attempt = self._require(RetryState.ATTEMPTING)
        self._state = RetryState.SUCCESS
        self._history.append(attempt)
        return Transition(RetryState.SUCCESS, attempt)

    def on_failure(self, error: GeminiTransportError) -> Transition:
        """
        Attempting(n) -> Retrying(delay) | Exhausted.

        Args:
            error: Классифицированная ошибка попытки

        Returns:
            Transition; для RETRYING в delay - задержка перед следующей попыткой
        """
        current = self._require(RetryState.ATTEMPTING)
        attempt = Attempt(number=current.number, last_error=error)
        self._attempt = attempt
        self._history.append(attempt)

        if not self.policy.should_retry(error, attempt.number):
            self._state = RetryState.EXHAUSTED
            logger.debug(
                "Attempt %d/%d failed with %s, giving up",
                attempt.number, self.policy.max_attempts, error.kind.value
            )
            return Transition(RetryState.EXHAUSTED, attempt)

        delay = self.policy.delay_after(error, attempt.number)
        self._state = RetryState.RETRYING
        return Transition(RetryState.RETRYING, attempt, delay)

    def advance(self) -> Attempt:
        """Retrying -> Attempting(n+1)."""
        current = self._require(RetryState.RETRYING)
        return self._begin(current.number + 1)

    def _begin(self, number: int) -> Attempt:
        self._attempt = Attempt(number=number)
        self._state = RetryState.ATTEMPTING
        return self._attempt

    def _require(self, state: RetryState) -> Attempt:
        if self._state is not state or self._attempt is None:
            raise RuntimeError(
                f"Invalid transition from {self._state.value if self._state else 'initial'} "
                f"(expected {state.value})"
            )
        return self._attempt

    @property
    def state(self) -> Optional[RetryState]:
        """Текущее состояние (None до start())."""
        return self._state

    @property
    def attempt(self) -> Optional[Attempt]:
        """Текущая попытка."""
        return self._attempt

    @property
    def last_error(self) -> Optional[GeminiTransportError]:
        """Ошибка последней упавшей попытки."""
        for attempt in reversed(self._history):
            if attempt.last_error is not None:
                return attempt.last_error
        return None

    @property
    def history(self) -> List[Attempt]:
        """Завершённые попытки по порядку."""
        return list(self._history)
