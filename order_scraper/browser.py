from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from playwright.async_api import BrowserContext, Page, async_playwright

from .json_logger import JsonLogger, log_event

CHROMIUM_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-blink-features=AutomationControlled"]


class BrowserSession:
    """One persistent, profile-scoped Chromium context, launched on first use."""

    def __init__(
        self,
        *,
        profile_dir: Path,
        headless: bool,
        logger: JsonLogger,
        chrome_executable: str = "",
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.profile_dir = Path(profile_dir)
        self.headless = headless
        self.logger = logger
        self.chrome_executable = chrome_executable.strip() or None
        self._playwright_factory = playwright_factory
        self._playwright: Any = None
        self._context: Optional[BrowserContext] = None

    def _launch_kwargs(self) -> Dict[str, Any]:
        launch_kwargs: Dict[str, Any] = {
            "user_data_dir": str(self.profile_dir),
            "headless": self.headless,
            "args": list(CHROMIUM_ARGS),
        }
        if self.chrome_executable and Path(self.chrome_executable).is_file():
            launch_kwargs["executable_path"] = self.chrome_executable
            log_event(
                logger=self.logger,
                phase="browser",
                message="Launching persistent context with local Chrome executable",
                executable_path=self.chrome_executable,
                headless=self.headless,
                profile_dir=str(self.profile_dir),
            )
        elif self.chrome_executable:
            log_event(
                logger=self.logger,
                phase="browser",
                status="warn",
                message="Configured Chrome executable missing; falling back to bundled Chromium",
                executable_path=self.chrome_executable,
                headless=self.headless,
            )
        else:
            log_event(
                logger=self.logger,
                phase="browser",
                message="Launching persistent context with bundled Chromium",
                headless=self.headless,
                profile_dir=str(self.profile_dir),
            )
        return launch_kwargs

    async def context(self) -> BrowserContext:
        if self._context is not None:
            return self._context

        self.profile_dir.mkdir(parents=True, exist_ok=True)
        launch_kwargs = self._launch_kwargs()
        self._playwright = await self._playwright_factory().start()
        chromium = self._playwright.chromium
        try:
            self._context = await chromium.launch_persistent_context(**launch_kwargs)
        except Exception as exc:
            if launch_kwargs.pop("executable_path", None) is None:
                await self._stop_playwright()
                raise
            log_event(
                logger=self.logger,
                phase="browser",
                status="warn",
                message="Local Chrome launch failed; retrying with bundled Chromium",
                executable_path=self.chrome_executable,
                headless=self.headless,
                error=str(exc),
            )
            try:
                self._context = await chromium.launch_persistent_context(**launch_kwargs)
            except Exception:
                await self._stop_playwright()
                raise
        return self._context

    async def new_page(self) -> Page:
        context = await self.context()
        return await context.new_page()

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()

    async def close(self) -> None:
        if self._context is not None:
            context, self._context = self._context, None
            try:
                await context.close()
            finally:
                await self._stop_playwright()
            log_event(logger=self.logger, phase="browser", message="Browser context closed", headless=self.headless)
        else:
            await self._stop_playwright()
