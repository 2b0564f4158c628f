"""Timeout-bound page primitives over a browser-use CDP session.

Uses session-scoped CDP commands (`session_id`) the same way the recipe runner
does, so browser-use's watchdogs never sit between us and the page. Every wait
is a polling loop that suspends on `asyncio.sleep` until its deadline; nothing
spins.
"""

import asyncio
import base64
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..exceptions import BrowserError, ElementTimeoutError, SessionLostError

if TYPE_CHECKING:
    from browser_use.browser.session import BrowserSession

    from ..config import BrowserSettings

logger = logging.getLogger(__name__)

Selectors = str | Sequence[str]

_QUERY_JS = """
(() => {
    const visible = %s;
    for (const el of document.querySelectorAll(%s)) {
        if (!visible) return el;
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        if (style.visibility !== 'hidden' && style.display !== 'none' && rect.width > 0 && rect.height > 0) {
            return el;
        }
    }
    return null;
})()
"""

_COUNT_IN_LAST_JS = """
(() => {
    const blocks = document.querySelectorAll(%s);
    if (blocks.length === 0) return {blocks: 0, items: 0};
    const last = blocks[blocks.length - 1];
    if (!last.isConnected) return {blocks: blocks.length, items: 0};
    return {blocks: blocks.length, items: last.querySelectorAll(%s).length};
})()
"""


def join_selectors(selectors: Selectors) -> str:
    """Collapse a selector set into one CSS selector list."""
    if isinstance(selectors, str):
        return selectors
    return ", ".join(selectors)


class PageSession:
    """One browser tab driven through CDP.

    Usage:
        page = await PageSession.open(settings.browser, profile_dir)
        await page.navigate(url, timeout=60)
        prompt = await page.wait_for("#prompt", visible=True, timeout=15)
        await prompt.type_text("hello")
        await page.close()
    """

    def __init__(
        self,
        browser_session: "BrowserSession",
        action_timeout: float = 30.0,
        poll_interval: float = 0.25,
    ):
        self.browser_session = browser_session
        self.action_timeout = action_timeout
        self.poll_interval = poll_interval
        self._session_id: str | None = None
        self._closed = False

    @classmethod
    async def open(
        cls,
        browser_settings: "BrowserSettings",
        profile_dir: str | Path | None = None,
        poll_interval: float = 0.25,
    ) -> "PageSession":
        """Launch a browser for `profile_dir` and attach to its first tab."""
        from browser_use import BrowserProfile
        from browser_use.browser.session import BrowserSession

        profile = BrowserProfile(
            headless=browser_settings.headless,
            user_data_dir=str(profile_dir) if profile_dir else None,
            executable_path=browser_settings.executable_path,
            args=list(browser_settings.args),
        )
        logger.info(f"Launching browser (headless={browser_settings.headless}, profile={profile_dir or 'temporary'})")
        browser_session = BrowserSession(browser_profile=profile)
        await browser_session.start()

        page = cls(browser_session, action_timeout=browser_settings.action_timeout, poll_interval=poll_interval)
        try:
            await page.attach()
        except BaseException:
            await browser_session.stop()
            raise
        return page

    async def attach(self) -> None:
        """Get the CDP session for the active tab and enable the domains we use."""
        cdp_session = await self.browser_session.get_or_create_cdp_session()
        self._session_id = cdp_session.session_id

        for domain in ("Page", "Runtime", "DOM"):
            try:
                await getattr(self._cdp, domain).enable(session_id=self._session_id)
            except Exception as e:
                # May already be enabled by session manager
                logger.debug(f"{domain}.enable: {e}")

    @property
    def _cdp(self) -> Any:
        return self.browser_session.cdp_client.send

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _send(self, domain: str, method: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        """Send one session-scoped CDP command with a deadline."""
        if self._closed:
            raise SessionLostError("Page session is closed")

        command = getattr(getattr(self._cdp, domain), method)
        kwargs: dict[str, Any] = {"session_id": self._session_id}
        if params is not None:
            kwargs["params"] = params

        try:
            return await asyncio.wait_for(command(**kwargs), timeout=timeout or self.action_timeout)
        except asyncio.TimeoutError as e:
            raise BrowserError(f"CDP {domain}.{method} timed out") from e
        except Exception as e:
            if not await self._is_alive():
                raise SessionLostError(f"Browser session lost during {domain}.{method}: {e}") from e
            raise BrowserError(f"CDP {domain}.{method} failed: {e}") from e

    async def _is_alive(self) -> bool:
        try:
            await asyncio.wait_for(
                self._cdp.Runtime.evaluate(params={"expression": "1", "returnByValue": True}, session_id=self._session_id),
                timeout=5.0,
            )
        except Exception:
            return False
        return True

    async def evaluate(self, expression: str, return_by_value: bool = True) -> dict[str, Any]:
        """Run JavaScript in the page and return the CDP RemoteObject."""
        result = await self._send(
            "Runtime",
            "evaluate",
            {"expression": expression, "returnByValue": return_by_value, "awaitPromise": False},
        )
        if result.get("exceptionDetails"):
            details = result["exceptionDetails"]
            text = details.get("exception", {}).get("description") or details.get("text", "Unknown error")
            raise BrowserError(f"Script failed: {text}")
        return result.get("result", {})

    async def call_on(self, object_id: str, function: str, *args: Any) -> Any:
        """Call `function` with `this` bound to a remote element."""
        result = await self._send(
            "Runtime",
            "callFunctionOn",
            {
                "functionDeclaration": function,
                "objectId": object_id,
                "arguments": [{"value": arg} for arg in args],
                "returnByValue": True,
            },
        )
        if result.get("exceptionDetails"):
            raise BrowserError(f"Element call failed: {result['exceptionDetails'].get('text', 'Unknown error')}")
        return result.get("result", {}).get("value")

    async def _wait_for_load(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            state = (await self.evaluate("document.readyState")).get("value")
            if state == "complete":
                return
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ElementTimeoutError("document.readyState == 'complete'", timeout)
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def navigate(self, url: str, timeout: float) -> None:
        """Navigate and wait for the document to finish loading."""
        logger.info(f"Navigating to {url}")
        nav_result = await self._send("Page", "navigate", {"url": url, "transitionType": "address_bar"}, timeout=timeout)
        if nav_result.get("errorText"):
            raise BrowserError(f"Navigation to {url} failed: {nav_result['errorText']}")
        await self._wait_for_load(timeout)
        logger.info("Navigation complete")

    async def reload(self, timeout: float) -> None:
        """Reload the page and wait for the document to finish loading."""
        logger.info("Reloading page")
        await self._send("Page", "reload", {"ignoreCache": False}, timeout=timeout)
        await self._wait_for_load(timeout)

    async def query(self, selectors: Selectors, visible: bool = False) -> "PageElement | None":
        """Return the first (visible) match right now, or None."""
        selector = join_selectors(selectors)
        remote = await self.evaluate(_QUERY_JS % (json.dumps(visible), json.dumps(selector)), return_by_value=False)
        object_id = remote.get("objectId")
        if not object_id:
            return None
        return PageElement(self, object_id, selector)

    async def wait_for(self, selectors: Selectors, visible: bool = False, timeout: float | None = None) -> "PageElement":
        """Poll until a matching element exists (and is visible when asked).

        Raises:
            ElementTimeoutError: if nothing matches before the deadline.
        """
        selector = join_selectors(selectors)
        timeout = self.action_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            element = await self.query(selector, visible=visible)
            if element is not None:
                return element
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ElementTimeoutError(selector, timeout)
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def wait_for_all(self, selectors: Sequence[str], visible: bool = False, timeout: float | None = None) -> list["PageElement"]:
        """Wait until every selector matches."""
        return list(await asyncio.gather(*(self.wait_for(s, visible=visible, timeout=timeout) for s in selectors)))

    async def wait_until_hidden(self, selectors: Selectors, timeout: float) -> None:
        """Poll until no visible element matches."""
        selector = join_selectors(selectors)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while await self.query(selector, visible=True) is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ElementTimeoutError(f"{selector} (hidden)", timeout)
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def count_in_last(self, container: str, item: str) -> tuple[int, int]:
        """Count `item` matches inside the last `container` match.

        Returns:
            (number of containers, items inside the last one)
        """
        value = (await self.evaluate(_COUNT_IN_LAST_JS % (json.dumps(container), json.dumps(item)))).get("value") or {}
        return int(value.get("blocks", 0)), int(value.get("items", 0))

    async def screenshot(self, path: Path) -> Path:
        """Save a full-page PNG screenshot."""
        result = await self._send("Page", "captureScreenshot", {"format": "png", "captureBeyondViewport": True})
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(base64.b64decode(result["data"]))
        return path

    async def close(self) -> None:
        """Stop the browser. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self.browser_session.stop()


class PageElement:
    """Handle to a live DOM node of a PageSession."""

    def __init__(self, page: PageSession, object_id: str, selector: str):
        self.page = page
        self.object_id = object_id
        self.selector = selector

    def __repr__(self) -> str:
        return f"PageElement({self.selector!r})"

    async def click(self) -> None:
        await self.page.call_on(self.object_id, "function() { this.scrollIntoView({block: 'center'}); this.click(); }")

    async def type_text(self, text: str) -> None:
        """Clear the field (input or contenteditable) and insert `text`."""
        await self.page.call_on(
            self.object_id,
            """function() {
                this.focus();
                if (this.isContentEditable) { this.innerHTML = ''; } else { this.value = ''; }
                this.dispatchEvent(new Event('input', {bubbles: true}));
            }""",
        )
        await self.page._send("Input", "insertText", {"text": text})

    async def upload_file(self, path: Path) -> None:
        """Set a file on an <input type=file> element."""
        await self.page._send("DOM", "setFileInputFiles", {"files": [str(path)], "objectId": self.object_id})
