import asyncio

import pytest

from order_scraper.errors import SignInRequiredError, TransientFetchError
from order_scraper.pipeline import run_scrape
from order_scraper.scraper import ScraperSettings

from conftest import logged_events


class FakeSession:
    def __init__(self, headless: bool):
        self.headless = headless


class ScriptedScraper:
    def __init__(self, outcomes, *, settings, store, browser, logger, hooks):
        self.outcomes = outcomes
        self.browser = browser
        self.hooks = hooks
        self.summaries = []
        self.closed = False

    async def scrape(self, summary=None):
        self.summaries.append(summary)
        outcome = self.outcomes.pop(0)
        if outcome is not None:
            raise outcome
        return summary

    async def close(self):
        self.closed = True


def _sign_in() -> SignInRequiredError:
    return SignInRequiredError("No year filter found", url="https://www.example.com/your-orders/orders")


def _run(outcomes, logger, **kwargs):
    created = []
    prompts = []

    def scraper_factory(**factory_kwargs):
        scraper = ScriptedScraper(outcomes, **factory_kwargs)
        created.append(scraper)
        return scraper

    async def prompt(exc):
        prompts.append(exc)

    coro = run_scrape(
        settings=ScraperSettings(user="me"),
        store=object(),
        logger=logger,
        browser_factory=FakeSession,
        scraper_factory=scraper_factory,
        prompt=prompt,
        **kwargs,
    )
    return coro, created, prompts


def test_headless_success_needs_a_single_session(logger):
    coro, created, prompts = _run([None], logger)

    summary = asyncio.run(coro)

    assert summary.stopped is False
    assert [scraper.browser.headless for scraper in created] == [True]
    assert created[0].closed is True
    assert prompts == []


def test_sign_in_wall_in_headless_mode_restarts_with_visible_browser(logger, log_stream):
    coro, created, prompts = _run([_sign_in(), None], logger)

    asyncio.run(coro)

    assert [scraper.browser.headless for scraper in created] == [True, False]
    assert all(scraper.closed for scraper in created)
    assert prompts == []
    events = logged_events(log_stream)
    assert any(event["phase"] == "sign_in" and event["status"] == "warn" for event in events)


def test_sign_in_wall_in_visible_browser_prompts_and_resumes(logger):
    coro, created, prompts = _run([_sign_in(), None], logger, headless=False)

    summary = asyncio.run(coro)

    assert len(created) == 1
    assert len(prompts) == 1
    assert created[0].summaries == [summary, summary]


def test_sign_in_without_interaction_fails(logger):
    coro, created, prompts = _run([_sign_in(), _sign_in()], logger, interaction_allowed=False)

    with pytest.raises(SignInRequiredError):
        asyncio.run(coro)

    assert prompts == []
    assert [scraper.browser.headless for scraper in created] == [True, False]
    assert all(scraper.closed for scraper in created)


def test_repeated_sign_in_walls_give_up_after_the_prompt_limit(logger):
    coro, created, prompts = _run([_sign_in()] * 5, logger, headless=False, max_sign_in_prompts=2)

    with pytest.raises(SignInRequiredError):
        asyncio.run(coro)

    assert len(prompts) == 2
    assert created[0].closed is True


def test_other_failures_propagate_without_escalation(logger):
    error = TransientFetchError("gave up", url="https://www.example.com/x", attempts=3)
    coro, created, prompts = _run([error], logger)

    with pytest.raises(TransientFetchError):
        asyncio.run(coro)

    assert len(created) == 1
    assert created[0].closed is True
