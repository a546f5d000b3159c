"""Fixtures and reporting hooks for the Books acceptance scenarios.

Each scenario gets its own RequestContext, Executor and BooksApiActions, so
no response survives from one scenario into the next.

By default scenarios run against the local mock server. Pass ``--live`` (or
``--api-base-url URL``) to resolve the base URL through the usual chain:
override, $BASE_URL, config file, default.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

import pytest

from books_bdd.actions import BooksApiActions
from books_bdd.config import build_target_config
from books_bdd.context import RequestContext
from books_bdd.executor import Executor
from books_bdd.models import TargetConfig
from books_bdd.validator import ResponseValidator

logger = logging.getLogger("books_bdd.scenarios")


@pytest.fixture
def api_target(request: pytest.FixtureRequest) -> TargetConfig:
    """Target for this scenario, resolved once per scenario."""
    config = request.config
    override = config.getoption("--api-base-url")
    if config.getoption("--live") or override:
        target = build_target_config(
            override,
            config.getoption("--books-config"),
            timeout=config.getoption("--api-timeout"),
        )
    else:
        server = request.getfixturevalue("books_server")
        target = TargetConfig(base_url=server.base_url)
    logger.info("Base URL: %s", target.base_url)
    return target


@pytest.fixture
def request_context(request: pytest.FixtureRequest) -> RequestContext:
    return RequestContext(name=request.node.name)


@pytest.fixture
def books_api(
    api_target: TargetConfig, request_context: RequestContext
) -> Generator[BooksApiActions, None, None]:
    with Executor(api_target, request_context) as executor:
        yield BooksApiActions(executor, ResponseValidator(request_context))


def pytest_bdd_before_scenario(request: pytest.FixtureRequest, feature: Any, scenario: Any) -> None:
    logger.info("Scenario: %s", scenario.name)


def pytest_bdd_step_error(
    request: pytest.FixtureRequest,
    feature: Any,
    scenario: Any,
    step: Any,
    step_func: Any,
    step_func_args: dict[str, Any],
    exception: Exception,
) -> None:
    logger.error(
        "Failed scenario: %s\nStep: %s %s\nError: %s: %s",
        scenario.name,
        step.keyword,
        step.name,
        type(exception).__name__,
        exception,
    )
