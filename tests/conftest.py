"""Shared fixtures for devassist tests."""

from __future__ import annotations

import pytest

from devassist_cli.domain import AnalysisRequest, AnalysisResult, AnalysisType

SQL_PHP = '<?php\n$db->query("SELECT * FROM users WHERE id = " . $id);\n'

CLEAN_PHP = """<?php
declare(strict_types=1);

final class Greeter
{
    public function greet(string $name): string
    {
        return 'Hello ' . $name;
    }
}
"""


def make_request(
    type: AnalysisType | str = AnalysisType.CODE_QUALITY,
    files: dict[str, str] | None = None,
    **kwargs,
) -> AnalysisRequest:
    return AnalysisRequest.create(type, files if files is not None else {"src/Greeter.php": CLEAN_PHP}, **kwargs)


class StubAnalyzer:
    """Analyzer double that records calls and replays scripted outcomes.

    Each entry in ``outcomes`` is either an exception (raised) or an
    AnalysisResult (returned). The last entry repeats once exhausted.
    """

    def __init__(self, name="stub", priority=50, outcomes=None, types=None):
        self.name = name
        self.priority = priority
        self.outcomes = list(outcomes or [AnalysisResult(type=AnalysisType.CODE_QUALITY, summary="ok")])
        self.types = types
        self.calls: list[tuple[str, str | None]] = []
        self.duration_requests: list[str] = []

    def supports(self, request):
        return self.types is None or request.type in self.types

    def estimated_duration(self, request):
        self.duration_requests.append(request.request_id)
        return 1

    def analyze(self, request, model=None):
        self.calls.append((request.request_id, model))
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeBackend:
    """Backend double returning canned responses and recording calls."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def complete(self, model, messages, *, temperature=0.1, max_tokens=2500, timeout=30):
        self.calls.append(
            {
                "model": model,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
                "timeout": timeout,
            }
        )
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sql_request():
    return make_request(AnalysisType.CODE_QUALITY, {"src/UserRepository.php": SQL_PHP})
