from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from .browser import BrowserSession
from .errors import ErrorKind, ScrapeError, SignInRequiredError
from .hooks import ScrapeHooks
from .json_logger import JsonLogger, log_event
from .scraper import Scraper, ScraperSettings, ScrapeSummary
from .store import DataStore

SignInPrompt = Callable[[SignInRequiredError], Awaitable[None]]
BrowserFactory = Callable[[bool], Any]

MAX_SIGN_IN_PROMPTS = 3


SIGN_IN_BANNER = """
============================================================================
 Sign-in required.
 Automated sign-in is not supported. Switch to the browser window, sign in,
 then come back here and press Enter to continue.
============================================================================
""".strip()


async def prompt_for_sign_in(exc: SignInRequiredError) -> None:
    print(SIGN_IN_BANNER, flush=True)
    await asyncio.to_thread(input)


async def run_scrape(
    *,
    settings: ScraperSettings,
    store: DataStore,
    logger: JsonLogger,
    browser_factory: BrowserFactory,
    hooks: Optional[ScrapeHooks] = None,
    headless: bool = True,
    interaction_allowed: bool = True,
    prompt: SignInPrompt = prompt_for_sign_in,
    scraper_factory: Callable[..., Scraper] = Scraper,
    max_sign_in_prompts: int = MAX_SIGN_IN_PROMPTS,
) -> ScrapeSummary:
    """Scrape with a headless browser, escalating to a visible one for sign-in.

    A sign-in wall in headless mode closes that session and restarts headed.
    A sign-in wall in headed mode asks the human to sign in through
    ``prompt`` and resumes in the same session; with ``interaction_allowed``
    off it is raised instead. Every other failure propagates.
    """

    summary = ScrapeSummary()
    hooks = hooks or ScrapeHooks()

    def make_scraper(run_headless: bool) -> Scraper:
        return scraper_factory(
            settings=settings,
            store=store,
            browser=browser_factory(run_headless),
            logger=logger,
            hooks=hooks,
        )

    current_headless = headless
    scraper = make_scraper(current_headless)
    prompts = 0
    try:
        while True:
            try:
                await scraper.scrape(summary)
            except ScrapeError as exc:
                if exc.kind is not ErrorKind.SIGN_IN_REQUIRED:
                    raise
                if current_headless:
                    log_event(
                        logger=logger,
                        phase="sign_in",
                        status="warn",
                        message="sign-in required in headless mode; restarting with a visible browser",
                        url=exc.url,
                    )
                    await scraper.close()
                    current_headless = False
                    scraper = make_scraper(current_headless)
                    continue
                if not interaction_allowed:
                    log_event(
                        logger=logger,
                        phase="sign_in",
                        status="error",
                        message="sign-in required but interaction is not allowed",
                        url=exc.url,
                    )
                    raise
                prompts += 1
                if prompts > max_sign_in_prompts:
                    log_event(
                        logger=logger,
                        phase="sign_in",
                        status="error",
                        message="sign-in still required after prompting",
                        url=exc.url,
                        prompts=prompts - 1,
                    )
                    raise
                log_event(logger=logger, phase="sign_in", message="waiting for interactive sign-in", url=exc.url)
                # The scraper resumes on the page the human just signed in with.
                await prompt(exc)
                continue
            log_event(
                logger=logger,
                phase="orchestrator",
                message="scrape complete",
                years=summary.years,
                orders=len(summary.orders),
                stopped=summary.stopped,
            )
            return summary
    finally:
        await scraper.close()


def browser_factory_for(*, cfg: Any, user: str, logger: JsonLogger) -> BrowserFactory:
    def factory(headless: bool) -> BrowserSession:
        return BrowserSession(
            profile_dir=cfg.profile_dir(user),
            headless=headless,
            logger=logger,
            chrome_executable=cfg.chrome_executable,
        )

    return factory
