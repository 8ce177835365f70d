"""Mutable data shared by the steps of one workflow execution."""

from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional

from .models import FormSubmission


def step_result_key(order: int) -> str:
    """Context key under which the result of step ``order`` is stored."""
    return f"step{order}Result"


class ExecutionContext:
    """Key/value store threaded through the step loop of one execution.

    Seeded with the submission under ``"submission"``; every successfully
    executed step adds its result under ``step<order>Result``. Only one step
    runs at a time, so no locking is needed.
    """

    def __init__(self, submission: FormSubmission) -> None:
        self._values: Dict[str, Any] = {"submission": submission}

    @property
    def submission(self) -> FormSubmission:
        return self._values["submission"]

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def step_result(self, order: int) -> Optional[Mapping[str, Any]]:
        """Return the recorded result of step ``order`` if it ran."""
        return self._values.get(step_result_key(order))

    def add_step_result(self, order: int, result: Mapping[str, Any]) -> None:
        self._values[step_result_key(order)] = result

    def step_results(self) -> Dict[str, Any]:
        """All step results added so far, keyed by context key."""
        return {
            k: v
            for k, v in self._values.items()
            if k.startswith("step") and k.endswith("Result")
        }
